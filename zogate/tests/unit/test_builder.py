"""Unit tests for signing identity and transaction assembly."""

import json

import pytest
from nacl.signing import VerifyKey
from solders.hash import Hash

from zogate.core.errors import TransportError
from zogate.core.identity import Identity
from zogate.execution.builder import TransactionBuilder
from zogate.execution.instructions import (
    DepositAccounts,
    DepositParams,
    Operation,
    WithdrawParams,
    sighash,
)
from zogate.tests.stubs import FakeRpc, key

SEED = bytes(range(32))


def _deposit_accounts(authority):
    return DepositAccounts(
        state=key(2),
        state_signer=key(20),
        cache=key(10),
        authority=authority,
        margin=key(21),
        token_account=key(22),
        vault=key(31),
        token_program=key(23),
    )


class TestIdentity:
    """Keypair loading and signing."""

    def test_seed_and_keypair_forms_agree(self):
        """Test 32 byte seeds and 64 byte keypairs give the same identity."""
        short = Identity.from_secret(SEED)
        full = Identity.from_secret(SEED + bytes(short.pubkey))
        assert short.pubkey == full.pubkey

    def test_rejects_mismatched_public_half(self):
        """Test a keypair whose public half does not match its seed is rejected."""
        with pytest.raises(ValueError):
            Identity.from_secret(SEED + bytes(32))

    def test_rejects_bad_length(self):
        """Test secrets of the wrong length are rejected."""
        with pytest.raises(ValueError):
            Identity.from_secret(bytes(31))

    def test_load_cli_keypair(self, tmp_path):
        """Test loading a Solana CLI JSON keypair file."""
        identity = Identity.from_secret(SEED)
        path = tmp_path / "id.json"
        path.write_text(json.dumps(list(SEED + bytes(identity.pubkey))))

        assert Identity.load(path).pubkey == identity.pubkey

    def test_signature_verifies(self):
        """Test signatures verify under the identity's public key."""
        identity = Identity.from_secret(SEED)
        sig = identity.sign(b"hello")
        VerifyKey(bytes(identity.pubkey)).verify(b"hello", bytes(sig))


class TestTransactionBuilder:
    """Compose, sign and submit."""

    @pytest.fixture
    def identity(self):
        return Identity.from_secret(SEED)

    @pytest.fixture
    def rpc(self):
        return FakeRpc()

    @pytest.fixture
    def builder(self, rpc, identity):
        return TransactionBuilder(rpc=rpc, identity=identity, program_id=key(1))

    def test_compose_signs_with_fee_payer(self, builder, identity):
        """Test composed transactions are paid and signed by the identity."""
        ix = builder.instruction(Operation.DEPOSIT, DepositParams(amount=10), _deposit_accounts(identity.pubkey))
        tx = builder.compose(ix, Hash.default())

        message = tx.message
        assert message.account_keys[0] == identity.pubkey
        assert message.recent_blockhash == Hash.default()
        VerifyKey(bytes(identity.pubkey)).verify(bytes(message), bytes(tx.signatures[0]))

    def test_compiled_account_order(self, builder, identity):
        """Test compiled instruction accounts keep their declared order."""
        accounts = _deposit_accounts(identity.pubkey)
        ix = builder.instruction(Operation.DEPOSIT, DepositParams(amount=10), accounts)
        message = builder.compose(ix, Hash.default()).message

        compiled = message.instructions[0]
        assert message.account_keys[compiled.program_id_index] == key(1)
        resolved = [message.account_keys[i] for i in bytes(compiled.accounts)]
        assert resolved == [m.pubkey for m in accounts.to_account_metas()]
        assert bytes(compiled.data)[:8] == sighash("deposit")

    def test_mismatched_params_rejected(self, builder, identity):
        """Test parameters of another operation are refused."""
        with pytest.raises(TypeError):
            builder.instruction(Operation.DEPOSIT, WithdrawParams(amount=1), _deposit_accounts(identity.pubkey))

    @pytest.mark.asyncio
    async def test_build_and_submit_returns_signature(self, builder, rpc, identity):
        """Test submission fetches a blockhash, sends and returns the signature."""
        sig = await builder.build_and_submit(
            Operation.DEPOSIT, DepositParams(amount=10), _deposit_accounts(identity.pubkey)
        )

        assert len(rpc.sent) == 1
        assert sig == str(rpc.sent[0].signatures[0])
        assert [name for name, _ in rpc.calls] == ["get_latest_blockhash", "send_transaction"]

    @pytest.mark.asyncio
    async def test_transport_failure_propagates(self, builder, rpc, identity):
        """Test submit failures propagate unchanged."""
        async def fail(raw):
            raise TransportError("sendTransaction failed: blockhash not found")

        rpc.send_transaction = fail
        with pytest.raises(TransportError):
            await builder.build_and_submit(
                Operation.DEPOSIT, DepositParams(amount=10), _deposit_accounts(identity.pubkey)
            )
