"""
cipherbet/tests/test_backend.py

Tests for the mock encryption backend:
- Input encryption and proof binding
- Homomorphic ops and ACLs
- EIP-712 user decryption (signature, window, ACL checks)
"""

import pytest

from cipherbet.backend import (
    EIP712_PRIMARY_TYPE,
    generate_keypair,
    open_sealed_value,
    seal_value,
)
from cipherbet.config import CONTRACT_ADDRESSES, MAX_UINT32, ZERO_HANDLE
from cipherbet.errors import (
    AuthorizationDenied,
    BackendUnreachable,
    EncryptionBackendUnavailable,
    InvalidPlaintext,
)
from cipherbet.models import HandleContractPair


CONTRACT = CONTRACT_ADDRESSES[31337]
OTHER_CONTRACT = "0xD503e539e1250e13006446dAbBFe461998FB285f"


# ============================================================================
# Fixtures
# ============================================================================

async def request_decrypt(backend, wallet, handle, contract=CONTRACT, duration_days=10, signer=None):
    """Run a full user-decrypt request as `wallet`."""
    keypair = backend.generate_keypair()
    start = int(backend.clock())
    eip712 = backend.create_eip712(keypair.public_key, [contract], start, duration_days)
    types = {EIP712_PRIMARY_TYPE: eip712["types"][EIP712_PRIMARY_TYPE]}
    signature = (signer or wallet).sign_typed_data(eip712["domain"], types, eip712["message"])
    return await backend.user_decrypt(
        [HandleContractPair(handle=handle, contract_address=contract)],
        keypair.private_key,
        keypair.public_key,
        signature,
        [contract],
        wallet.address,
        start,
        duration_days,
    )


def grant(backend, handle, *addresses):
    for address in addresses:
        backend.allow(handle, address)


# ============================================================================
# Sealing
# ============================================================================

class TestSealing:
    """Test ephemeral-key sealing of cleartexts."""

    def test_open_with_matching_key(self):
        keypair = generate_keypair()
        assert open_sealed_value(seal_value(1234, keypair.public_key), keypair.private_key) == 1234

    def test_other_key_cannot_open(self):
        sealed = seal_value(7, generate_keypair().public_key)
        with pytest.raises(Exception):
            open_sealed_value(sealed, generate_keypair().private_key)

    def test_repr_hides_private_key(self):
        keypair = generate_keypair()
        assert keypair.private_key not in repr(keypair)


# ============================================================================
# Input encryption
# ============================================================================

class TestEncryptInput:
    """Test handle creation and proof binding."""

    @pytest.mark.trio
    async def test_encrypt_produces_bound_input(self, backend, alice):
        encrypted = await backend.encrypt_input(CONTRACT, alice.address, 100, True)

        assert encrypted.amount_handle != encrypted.choice_handle
        assert encrypted.handles == [encrypted.amount_handle, encrypted.choice_handle]
        assert backend.verify_input(encrypted, CONTRACT, alice.address) == tuple(encrypted.handles)
        assert backend.oracle_decrypt(encrypted.amount_handle) == 100
        assert backend.oracle_decrypt(encrypted.choice_handle) == 1

    @pytest.mark.trio
    async def test_replay_by_other_submitter_rejected(self, backend, alice, bob):
        encrypted = await backend.encrypt_input(CONTRACT, alice.address, 100, True)
        with pytest.raises(AuthorizationDenied):
            backend.verify_input(encrypted, CONTRACT, bob.address)

    @pytest.mark.trio
    async def test_replay_into_other_contract_rejected(self, backend, alice):
        encrypted = await backend.encrypt_input(CONTRACT, alice.address, 100, True)
        with pytest.raises(AuthorizationDenied):
            backend.verify_input(encrypted, OTHER_CONTRACT, alice.address)

    @pytest.mark.trio
    async def test_amount_outside_uint32(self, backend, alice):
        with pytest.raises(InvalidPlaintext):
            await backend.encrypt_input(CONTRACT, alice.address, MAX_UINT32 + 1, True)
        with pytest.raises(InvalidPlaintext):
            await backend.encrypt_input(CONTRACT, alice.address, -1, True)

    @pytest.mark.trio
    async def test_unavailable(self, backend, alice):
        backend.available = False
        with pytest.raises(EncryptionBackendUnavailable):
            await backend.encrypt_input(CONTRACT, alice.address, 1, False)


# ============================================================================
# Homomorphic ops
# ============================================================================

class TestHomomorphicOps:
    """Test add/select over handles."""

    def test_add_and_select(self, backend):
        a = backend.trivial_encrypt(30)
        b = backend.trivial_encrypt(12)
        yes = backend.trivial_encrypt(1)
        no = backend.trivial_encrypt(0)

        assert backend.oracle_decrypt(backend.add(a, b)) == 42
        assert backend.oracle_decrypt(backend.select(yes, a, b)) == 30
        assert backend.oracle_decrypt(backend.select(no, a, b)) == 12

    def test_zero_handle_adds_as_zero(self, backend):
        a = backend.trivial_encrypt(5)
        assert backend.oracle_decrypt(backend.add(ZERO_HANDLE, a)) == 5

    def test_public_handles_readable_by_anyone(self, backend, alice):
        handle = backend.trivial_encrypt(9)
        assert not backend.is_allowed(handle, alice.address)
        backend.make_public(handle)
        assert backend.is_allowed(handle, alice.address)


# ============================================================================
# User decryption
# ============================================================================

class TestUserDecrypt:
    """Test the signed decryption request path."""

    @pytest.mark.trio
    async def test_authorized_request(self, backend, alice):
        handle = backend.trivial_encrypt(2000)
        grant(backend, handle, alice.address, CONTRACT)

        result = await request_decrypt(backend, alice, handle)

        assert result == {handle: 2000}
        assert backend.decrypt_requests == 1

    @pytest.mark.trio
    async def test_wrong_signer_denied(self, backend, alice, bob):
        handle = backend.trivial_encrypt(1)
        grant(backend, handle, alice.address, CONTRACT)

        with pytest.raises(AuthorizationDenied, match="signature"):
            await request_decrypt(backend, alice, handle, signer=bob)

    @pytest.mark.trio
    async def test_expired_request_denied(self, backend, clock, alice):
        handle = backend.trivial_encrypt(1)
        grant(backend, handle, alice.address, CONTRACT)

        keypair = backend.generate_keypair()
        start = int(clock())
        eip712 = backend.create_eip712(keypair.public_key, [CONTRACT], start, 10)
        types = {EIP712_PRIMARY_TYPE: eip712["types"][EIP712_PRIMARY_TYPE]}
        signature = alice.sign_typed_data(eip712["domain"], types, eip712["message"])

        clock.advance(11 * 86400)
        with pytest.raises(AuthorizationDenied, match="not valid"):
            await backend.user_decrypt(
                [HandleContractPair(handle, CONTRACT)],
                keypair.private_key, keypair.public_key, signature,
                [CONTRACT], alice.address, start, 10,
            )

    @pytest.mark.trio
    async def test_missing_acl_denied(self, backend, alice):
        handle = backend.trivial_encrypt(1)
        grant(backend, handle, CONTRACT)

        with pytest.raises(AuthorizationDenied, match="may not decrypt"):
            await request_decrypt(backend, alice, handle)

    @pytest.mark.trio
    async def test_contract_not_covered_denied(self, backend, alice):
        handle = backend.trivial_encrypt(1)
        grant(backend, handle, alice.address, CONTRACT)

        keypair = backend.generate_keypair()
        start = int(backend.clock())
        eip712 = backend.create_eip712(keypair.public_key, [OTHER_CONTRACT], start, 10)
        types = {EIP712_PRIMARY_TYPE: eip712["types"][EIP712_PRIMARY_TYPE]}
        signature = alice.sign_typed_data(eip712["domain"], types, eip712["message"])

        with pytest.raises(AuthorizationDenied, match="not covered"):
            await backend.user_decrypt(
                [HandleContractPair(handle, CONTRACT)],
                keypair.private_key, keypair.public_key, signature,
                [OTHER_CONTRACT], alice.address, start, 10,
            )

    @pytest.mark.trio
    async def test_invalid_duration_denied(self, backend, alice):
        handle = backend.trivial_encrypt(1)
        grant(backend, handle, alice.address, CONTRACT)
        with pytest.raises(AuthorizationDenied, match="duration"):
            await request_decrypt(backend, alice, handle, duration_days=0)

    @pytest.mark.trio
    async def test_unknown_handle_left_out(self, backend, alice):
        result = await request_decrypt(backend, alice, "0x" + "ee" * 32)
        assert result == {}

    @pytest.mark.trio
    async def test_unreachable(self, backend, alice):
        backend.available = False
        with pytest.raises(BackendUnreachable):
            await request_decrypt(backend, alice, backend.trivial_encrypt(1))
