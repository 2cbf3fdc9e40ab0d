"""GeoStake contract client."""
from typing import Any, Dict, Optional

from eth_account import Account
from loguru import logger
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception
from web3.logs import DISCARD

from .abi import ERC20_ABI, GAS_LIMITS, GEOSTAKE_ABI, NATIVE_TOKEN_ADDRESS
from .config import GeoStakeConfig
from .errors import ChainError, ContractNotConfigured, ReceiptDecodeError, TransactionFailed
from .geo import to_contract_coordinate
from .rewards import DEFAULT_DECIMALS, RewardSplit
from .stake import OnChainStake
from .timing import duration_seconds


def is_native_token(token_address: str) -> bool:
    return token_address.lower() == NATIVE_TOKEN_ADDRESS


def to_hex(value) -> str:
    if isinstance(value, str):
        return value
    return Web3.to_hex(value)


class GeoStakeContract:
    """Reads from and submits transactions to the GeoStake contract."""

    def __init__(self, config: GeoStakeConfig, web3: Optional[Any] = None,
                 account: Optional[Any] = None):
        """Initialize the contract client.

        Args:
            config: Client configuration (contract address, RPC URL, key)
            web3: Optional AsyncWeb3 instance (built from config.rpc_url if omitted)
            account: Optional signing account (built from config.private_key if omitted)
        """
        if not config.contract_address or is_native_token(config.contract_address):
            raise ContractNotConfigured(
                "Contract address not configured. Set GEOSTAKE_CONTRACT_ADDRESS."
            )
        self.config = config
        self.web3 = web3 or AsyncWeb3(AsyncHTTPProvider(config.rpc_url))
        self.address = Web3.to_checksum_address(config.contract_address)
        self.contract = self.web3.eth.contract(address=self.address, abi=GEOSTAKE_ABI)
        if account is None and config.private_key:
            account = Account.from_key(config.private_key)
        self.account = account

    @property
    def sender(self) -> str:
        if self.account is None:
            raise ContractNotConfigured("No signing key configured. Set GEOSTAKE_PRIVATE_KEY.")
        return self.account.address

    def token_contract(self, token_address: str):
        return self.web3.eth.contract(address=Web3.to_checksum_address(token_address),
                                      abi=ERC20_ABI)

    async def get_stake(self, stake_id: int) -> OnChainStake:
        """Read a stake's authoritative on-chain state."""
        try:
            result = await self.contract.functions.getStake(stake_id).call()
        except (ContractLogicError, Web3Exception) as e:
            raise ChainError(f"Failed to read stake #{stake_id}: {e}") from e
        return OnChainStake.from_result(stake_id, result)

    async def get_staker_reward_bps(self) -> int:
        """Staker reward share in basis points, as currently set on the contract."""
        try:
            return int(await self.contract.functions.stakerRewardPercentage().call())
        except (ContractLogicError, Web3Exception) as e:
            raise ChainError(f"Failed to read staker reward percentage: {e}") from e

    async def get_allowance(self, token_address: str, owner: str) -> int:
        if is_native_token(token_address):
            return 2 ** 256 - 1
        token = self.token_contract(token_address)
        try:
            return int(await token.functions.allowance(
                Web3.to_checksum_address(owner), self.address).call())
        except (ContractLogicError, Web3Exception) as e:
            raise ChainError(f"Failed to read allowance for {token_address}: {e}") from e

    async def get_token_decimals(self, token_address: str) -> int:
        if is_native_token(token_address):
            return DEFAULT_DECIMALS
        try:
            return int(await self.token_contract(token_address).functions.decimals().call())
        except (ContractLogicError, Web3Exception) as e:
            logger.warning(f"Could not read decimals of {token_address}, assuming 18: {e}")
            return DEFAULT_DECIMALS

    async def estimate_gas(self, function, operation: str, value: int = 0) -> int:
        """Estimate gas with a 10% buffer, falling back to a fixed limit."""
        try:
            estimate = await function.estimate_gas({"from": self.sender, "value": value})
            return int(estimate) + int(estimate) // 10
        except (ContractLogicError, Web3Exception, ValueError) as e:
            fallback = GAS_LIMITS[operation]
            logger.warning(f"Gas estimation for {operation} failed, using {fallback}: {e}")
            return fallback

    async def _send(self, function, operation: str, value: int = 0) -> str:
        sender = self.sender
        try:
            gas = await self.estimate_gas(function, operation, value)
            nonce = await self.web3.eth.get_transaction_count(sender, "pending")
            tx: Dict[str, Any] = await function.build_transaction({
                "from": sender,
                "value": value,
                "gas": gas,
                "nonce": nonce,
                "chainId": self.config.chain_id,
            })
            signed = self.account.sign_transaction(tx)
            tx_hash = await self.web3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as e:
            raise TransactionFailed(f"{operation} reverted: {e}") from e
        except (Web3Exception, ValueError) as e:
            raise TransactionFailed(f"{operation} failed: {e}") from e

        tx_hash = to_hex(tx_hash)
        logger.info(f"Submitted {operation} transaction {tx_hash}")
        return tx_hash

    async def approve(self, token_address: str, amount: int) -> str:
        token = self.token_contract(token_address)
        return await self._send(token.functions.approve(self.address, amount), "approve")

    async def stake(self, token_address: str, amount: int, latitude: float,
                    longitude: float, duration_hours: int) -> str:
        """Submit a stake transaction.

        Args:
            token_address: Token to stake (zero address for the native coin)
            amount: Amount in wei
            latitude: Stake latitude in decimal degrees
            longitude: Stake longitude in decimal degrees
            duration_hours: How long the stake stays claimable

        Returns:
            Transaction hash
        """
        native = is_native_token(token_address)
        function = self.contract.functions.stake(
            Web3.to_checksum_address(token_address),
            amount,
            to_contract_coordinate(latitude),
            to_contract_coordinate(longitude),
            duration_seconds(duration_hours),
        )
        operation = "stake_native" if native else "stake_erc20"
        return await self._send(function, operation, value=amount if native else 0)

    async def claim(self, stake_id: int) -> str:
        return await self._send(self.contract.functions.claim(stake_id), "claim")

    async def refund(self, stake_id: int) -> str:
        return await self._send(self.contract.functions.refund(stake_id), "refund")

    async def withdraw_rewards(self, token_address: str) -> str:
        function = self.contract.functions.withdrawRewards(Web3.to_checksum_address(token_address))
        return await self._send(function, "withdrawRewards")

    async def wait_for_receipt(self, tx_hash: str, timeout: Optional[float] = None):
        """Block until the transaction is mined.

        Raises:
            TransactionFailed: If the transaction reverted or was not mined in time
        """
        timeout = timeout or self.config.receipt_timeout
        try:
            receipt = await self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as e:
            raise TransactionFailed(
                f"Transaction {tx_hash} was not confirmed within {timeout:g}s", tx_hash
            ) from e
        if receipt["status"] != 1:
            raise TransactionFailed(f"Transaction {tx_hash} reverted", tx_hash)
        logger.debug(f"Transaction {tx_hash} confirmed in block {receipt.get('blockNumber')}")
        return receipt

    def _events(self, receipt, event_name: str):
        event = getattr(self.contract.events, event_name)()
        return [
            log for log in event.process_receipt(receipt, errors=DISCARD)
            if log["address"].lower() == self.address.lower()
        ]

    def extract_stake_id(self, receipt) -> int:
        """Get the new stake's id from the Staked event of a confirmed receipt."""
        events = self._events(receipt, "Staked")
        if not events:
            raise ReceiptDecodeError(to_hex(receipt["transactionHash"]), "Staked")
        return int(events[0]["args"]["stakeId"])

    def extract_claim_split(self, receipt) -> Optional[RewardSplit]:
        """Get the paid amounts from the StakeClaimed event, if present."""
        events = self._events(receipt, "StakeClaimed")
        if not events:
            return None
        args = events[0]["args"]
        return RewardSplit(int(args["claimerAmount"]), int(args["stakerReward"]))
