"""
Tests for memo transaction construction, signing and broadcast sequencing.
"""

import pytest
from bsv import P2PKH, Script, Transaction
from bsv.script.spend import Spend

from memowallet import core_defs
from memowallet.core_defs import ChainConnectivityError, CryptoProviderError, InsufficientFundsError
from memowallet.publisher import MemoPublisher, compute_change
from memowallet.crypto_provider import push_data
from tests.conftest import FakeChain


def make_publisher(config, store, crypto, chain):
    return MemoPublisher(config, store, chain, crypto)


@pytest.mark.parametrize("input_sats, fee, change", [
    (10_000, 750, 9_250),
    (751, 750, 1),
    (1_000_000, 300, 999_700),
])
def test_change_is_input_minus_fee(input_sats, fee, change):
    assert compute_change(input_sats, fee) == change


@pytest.mark.parametrize("input_sats", [750, 749, 0])
def test_input_not_covering_fee_is_refused(input_sats):
    with pytest.raises(InsufficientFundsError):
        compute_change(input_sats, 750, "mzBc4XEFSdzCDcTxAgf6EZXgsZWpztRhef")


@pytest.mark.asyncio
async def test_memo_transaction_layout(config, store, crypto, identity):
    chain = FakeChain(amounts=[10_000])
    publisher = make_publisher(config, store, crypto, chain)
    utxo = (await chain.get_utxos(identity["cashAddress"]))["utxos"][0]

    built = await publisher.build_memo_transaction(identity, utxo, "hello")
    tx = built["tx"]

    assert len(tx.inputs) == 1
    assert tx.inputs[0].source_txid == utxo["txid"]
    assert tx.inputs[0].source_output_index == utxo["vout"]

    assert len(tx.outputs) == 2
    data_out, change_out = tx.outputs
    assert data_out.satoshis == 0
    assert data_out.locking_script.hex() == "006a" + "026d02" + push_data(b"hello").hex()
    assert change_out.satoshis == 9_250
    assert change_out.locking_script.hex() == P2PKH().lock(identity["cashAddress"]).hex()

    assert built["input_satoshis"] == 10_000
    assert built["fee_satoshis"] == 750
    assert built["change_satoshis"] == 9_250
    assert sum(o.satoshis for o in tx.outputs) + built["fee_satoshis"] == built["input_satoshis"]


@pytest.mark.asyncio
async def test_long_payload_uses_pushdata1(config, store, crypto, identity):
    chain = FakeChain(amounts=[10_000])
    publisher = make_publisher(config, store, crypto, chain)
    utxo = (await chain.get_utxos(identity["cashAddress"]))["utxos"][0]
    message = "x" * 100

    built = await publisher.build_memo_transaction(identity, utxo, message)
    script_hex = built["tx"].outputs[0].locking_script.hex()
    assert script_hex == "006a026d02" + "4c64" + message.encode().hex()


@pytest.mark.asyncio
async def test_post_memo_broadcasts_and_records(config, store, crypto, identity):
    chain = FakeChain(amounts=[10_000])
    publisher = make_publisher(config, store, crypto, chain)

    memo = await publisher.post_memo(identity, "TEST MESSAGE")

    assert len(chain.broadcasts) == 1
    signed = Transaction.from_hex(chain.broadcasts[0])
    assert memo == {"message": "TEST MESSAGE", "txid": signed.txid()}
    assert signed.outputs[1].satoshis == 9_250
    assert signed.inputs[0].unlocking_script is not None
    assert store.load(core_defs.KIND_MEMO) == memo


@pytest.mark.asyncio
async def test_largest_utxo_is_spent(config, store, crypto, identity):
    chain = FakeChain(amounts=[2_000, 10_000, 5_000])
    publisher = make_publisher(config, store, crypto, chain)

    await publisher.post_memo(identity, "largest")

    signed = Transaction.from_hex(chain.broadcasts[0])
    assert signed.inputs[0].source_output_index == 1
    assert signed.outputs[1].satoshis == 9_250


@pytest.mark.asyncio
async def test_small_utxo_fails_before_broadcast(config, store, crypto, identity):
    chain = FakeChain(amounts=[700])
    publisher = make_publisher(config, store, crypto, chain)

    with pytest.raises(InsufficientFundsError):
        await publisher.post_memo(identity, "too poor")

    assert chain.broadcasts == []
    assert "fetch_raw_transaction_hex" not in chain.calls
    assert not store.exists(core_defs.KIND_MEMO)


@pytest.mark.asyncio
async def test_txid_mismatch_is_an_error(config, store, crypto, identity):
    chain = FakeChain(amounts=[10_000])
    chain.broadcast_txid_override = "00" * 32
    publisher = make_publisher(config, store, crypto, chain)

    with pytest.raises(ChainConnectivityError):
        await publisher.post_memo(identity, "mismatch")

    assert len(chain.broadcasts) == 1
    assert not store.exists(core_defs.KIND_MEMO)


@pytest.mark.asyncio
async def test_utxo_amount_must_match_source_tx(config, store, crypto, identity):
    chain = FakeChain(amounts=[10_000])
    await chain.get_utxos(identity["cashAddress"])
    chain.utxos[0]["satoshis"] = 20_000
    publisher = make_publisher(config, store, crypto, chain)

    with pytest.raises(ChainConnectivityError):
        await publisher.post_memo(identity, "inflated")
    assert chain.broadcasts == []


@pytest.mark.asyncio
async def test_dry_run_neither_broadcasts_nor_records(config, store, crypto, identity):
    chain = FakeChain(amounts=[10_000])
    publisher = make_publisher(config, store, crypto, chain)

    result = await publisher.post_memo(identity, "dry", dry_run=True)

    assert result["dry_run"] is True
    assert Transaction.from_hex(result["raw_tx_hex"]).txid() == result["txid"]
    assert chain.broadcasts == []
    assert not store.exists(core_defs.KIND_MEMO)


@pytest.mark.asyncio
async def test_broadcast_failure_propagates(config, store, crypto, identity):
    chain = FakeChain(amounts=[10_000])

    async def failing_broadcast(raw_hex):
        raise ChainConnectivityError("HTTP 500: missing inputs")

    chain.broadcast = failing_broadcast
    publisher = make_publisher(config, store, crypto, chain)

    with pytest.raises(ChainConnectivityError):
        await publisher.post_memo(identity, "fail")
    assert not store.exists(core_defs.KIND_MEMO)


def test_sign_input_checks_committed_amount(crypto, identity, config):
    from tests.conftest import make_source_tx

    source = make_source_tx(identity["cashAddress"], [10_000])
    tx_input = crypto.make_input(source.hex(), source.txid(), 0, identity["WIF"], config.network)
    tx = crypto.build_transaction([tx_input], [crypto.pay_output(identity["cashAddress"], 9_000)])
    with pytest.raises(CryptoProviderError):
        crypto.sign_input(tx, 0, 12_000)


def _evaluates(locking_script, unlocking_script):
    spend = Spend({
        "sourceTXID": "00" * 32,
        "sourceOutputIndex": 0,
        "sourceSatoshis": 0,
        "lockingScript": locking_script,
        "transactionVersion": 1,
        "otherInputs": [],
        "outputs": [],
        "inputIndex": 0,
        "unlockingScript": unlocking_script,
        "inputSequence": 0xFFFFFFFF,
        "lockTime": 0,
    })
    try:
        return spend.validate()
    except Exception:
        return False


def test_data_output_cannot_be_spent(crypto, config):
    data_script = crypto.encode_data_script(config.data_marker, b"hello")
    assert data_script.hex().startswith("006a")
    assert not _evaluates(data_script, Script("51"))
    # OP_DROP OP_TRUE accepts the same unlocking script
    assert _evaluates(Script("7551"), Script("51"))
