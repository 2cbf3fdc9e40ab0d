"""Tests for the GeoStake contract client against a mocked web3."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from geostake.core.abi import GAS_LIMITS, NATIVE_TOKEN_ADDRESS
from geostake.core.chain import GeoStakeContract, is_native_token, to_hex
from geostake.core.config import GeoStakeConfig
from geostake.core.errors import (
    ChainError,
    ContractNotConfigured,
    ReceiptDecodeError,
    TransactionFailed,
)
from tests.conftest import CLAIMER, CONTRACT_ADDRESS, STAKER, TOKEN

TX_HASH = bytes.fromhex("12" * 32)
RECEIPT = {"status": 1, "blockNumber": 100, "transactionHash": TX_HASH}


@pytest.fixture
def web3():
    web3 = MagicMock()
    web3.eth.get_transaction_count = AsyncMock(return_value=7)
    web3.eth.send_raw_transaction = AsyncMock(return_value=TX_HASH)
    web3.eth.wait_for_transaction_receipt = AsyncMock(return_value=RECEIPT)
    return web3


@pytest.fixture
def account():
    account = MagicMock(address=Web3.to_checksum_address(CLAIMER))
    account.sign_transaction.return_value = MagicMock(raw_transaction=b"signed")
    return account


@pytest.fixture
def client(config, web3, account):
    return GeoStakeContract(config, web3=web3, account=account)


@pytest.fixture
def functions(web3):
    return web3.eth.contract.return_value.functions


def _mock_function(function, gas=100_000):
    function.estimate_gas = AsyncMock(return_value=gas)
    function.build_transaction = AsyncMock(return_value={"data": "0x"})
    return function


def test_requires_contract_address():
    with pytest.raises(ContractNotConfigured):
        GeoStakeContract(GeoStakeConfig(), web3=MagicMock())
    with pytest.raises(ContractNotConfigured):
        GeoStakeContract(GeoStakeConfig(contract_address=NATIVE_TOKEN_ADDRESS), web3=MagicMock())


def test_requires_signing_key_to_send(config, web3):
    client = GeoStakeContract(config, web3=web3)
    with pytest.raises(ContractNotConfigured):
        client.sender
    with pytest.raises(ContractNotConfigured):
        asyncio.run(client.claim(7))


def test_helpers():
    assert is_native_token(NATIVE_TOKEN_ADDRESS)
    assert not is_native_token(TOKEN)
    assert to_hex(TX_HASH) == "0x" + "12" * 32
    assert to_hex("0xabc") == "0xabc"


def test_get_stake(client, functions):
    functions.getStake.return_value.call = AsyncMock(return_value=(
        STAKER, NATIVE_TOKEN_ADDRESS, 10 ** 18, 40712800, -74006000, 1740916800, False,
    ))
    onchain = asyncio.run(client.get_stake(7))
    functions.getStake.assert_called_with(7)
    assert onchain.stake_id == 7
    assert onchain.amount == 10 ** 18
    assert onchain.position.latitude == pytest.approx(40.7128)


def test_get_stake_failure(client, functions):
    functions.getStake.return_value.call = AsyncMock(side_effect=ContractLogicError("no stake"))
    with pytest.raises(ChainError, match="#7"):
        asyncio.run(client.get_stake(7))


def test_staker_reward_bps(client, functions):
    functions.stakerRewardPercentage.return_value.call = AsyncMock(return_value=500)
    assert asyncio.run(client.get_staker_reward_bps()) == 500


def test_native_token_needs_no_allowance(client, web3):
    assert asyncio.run(client.get_allowance(NATIVE_TOKEN_ADDRESS, CLAIMER)) == 2 ** 256 - 1
    assert asyncio.run(client.get_token_decimals(NATIVE_TOKEN_ADDRESS)) == 18


def test_token_decimals_fallback(client, functions):
    functions.decimals.return_value.call = AsyncMock(side_effect=ContractLogicError("no decimals"))
    assert asyncio.run(client.get_token_decimals(TOKEN)) == 18


def test_claim_builds_signed_transaction(client, functions, web3, account):
    claim = _mock_function(functions.claim.return_value)

    tx_hash = asyncio.run(client.claim(7))

    assert tx_hash == "0x" + "12" * 32
    functions.claim.assert_called_with(7)
    claim.build_transaction.assert_awaited_once_with({
        "from": account.address,
        "value": 0,
        "gas": 110_000,
        "nonce": 7,
        "chainId": 43113,
    })
    account.sign_transaction.assert_called_once_with({"data": "0x"})
    web3.eth.send_raw_transaction.assert_awaited_once_with(b"signed")


def test_gas_estimate_fallback(client, functions):
    claim = _mock_function(functions.claim.return_value)
    claim.estimate_gas.side_effect = ContractLogicError("estimate failed")

    asyncio.run(client.claim(7))

    assert claim.build_transaction.await_args.args[0]["gas"] == GAS_LIMITS["claim"]


def test_revert_raises_transaction_failed(client, functions, web3):
    _mock_function(functions.claim.return_value)
    web3.eth.send_raw_transaction.side_effect = ContractLogicError("execution reverted: too far")

    with pytest.raises(TransactionFailed, match="too far"):
        asyncio.run(client.claim(7))


def test_stake_native_sends_value(client, functions):
    stake = _mock_function(functions.stake.return_value)

    asyncio.run(client.stake(NATIVE_TOKEN_ADDRESS, 10 ** 18, 40.7128, -74.006, 24))

    functions.stake.assert_called_with(NATIVE_TOKEN_ADDRESS, 10 ** 18, 40712800, -74006000, 86400)
    assert stake.build_transaction.await_args.args[0]["value"] == 10 ** 18


def test_stake_token_sends_no_value(client, functions):
    stake = _mock_function(functions.stake.return_value)

    asyncio.run(client.stake(TOKEN, 5_000_000, 40.7128, -74.006, 1))

    functions.stake.assert_called_with(Web3.to_checksum_address(TOKEN), 5_000_000,
                                       40712800, -74006000, 3600)
    assert stake.build_transaction.await_args.args[0]["value"] == 0


def test_approve(client, functions):
    _mock_function(functions.approve.return_value)
    asyncio.run(client.approve(TOKEN, 5_000_000))
    functions.approve.assert_called_with(Web3.to_checksum_address(CONTRACT_ADDRESS), 5_000_000)


def test_wait_for_receipt(client, web3):
    assert asyncio.run(client.wait_for_receipt("0xabc")) == RECEIPT
    web3.eth.wait_for_transaction_receipt.assert_awaited_with("0xabc", timeout=120)


def test_wait_for_receipt_reverted(client, web3):
    web3.eth.wait_for_transaction_receipt.return_value = dict(RECEIPT, status=0)
    with pytest.raises(TransactionFailed) as exc:
        asyncio.run(client.wait_for_receipt("0xabc"))
    assert exc.value.tx_hash == "0xabc"


def test_wait_for_receipt_timeout(client, web3):
    web3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted()
    with pytest.raises(TransactionFailed, match="not confirmed within 5s"):
        asyncio.run(client.wait_for_receipt("0xabc", timeout=5))


def test_extract_stake_id(client, web3):
    events = web3.eth.contract.return_value.events
    events.Staked.return_value.process_receipt.return_value = [
        {"address": TOKEN, "args": {"stakeId": 1}},
        {"address": Web3.to_checksum_address(CONTRACT_ADDRESS), "args": {"stakeId": 42}},
    ]
    assert client.extract_stake_id(RECEIPT) == 42


def test_extract_stake_id_missing(client, web3):
    events = web3.eth.contract.return_value.events
    events.Staked.return_value.process_receipt.return_value = []
    with pytest.raises(ReceiptDecodeError) as exc:
        client.extract_stake_id(RECEIPT)
    assert exc.value.tx_hash == "0x" + "12" * 32


def test_extract_claim_split(client, web3):
    events = web3.eth.contract.return_value.events
    events.StakeClaimed.return_value.process_receipt.return_value = [
        {"address": CONTRACT_ADDRESS.lower(), "args": {"claimerAmount": 950, "stakerReward": 50}},
    ]
    assert client.extract_claim_split(RECEIPT) == (950, 50)

    events.StakeClaimed.return_value.process_receipt.return_value = []
    assert client.extract_claim_split(RECEIPT) is None
