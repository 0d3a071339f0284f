"""Settlement contract access.

Reads the current round (id, pot, finalized) and the ``Joined`` payment
events, and submits the privileged ``finalizeRound(winner)`` payout. Every
call goes through an HTTP provider with a request timeout; the payout also
bounds the receipt wait.
"""

from dataclasses import dataclass
from typing import Optional

from flask import current_app
from web3 import Web3
from eth_account import Account

from hodl.errors import ExternalDependencyError


SETTLEMENT_ABI = [
    {
        "type": "function",
        "name": "getCurrentRoundInfo",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [
            {"name": "id", "type": "uint256"},
            {"name": "pot", "type": "uint256"},
            {"name": "start", "type": "uint256"},
            {"name": "end", "type": "uint256"},
            {"name": "finalized", "type": "bool"},
        ],
    },
    {
        "type": "function",
        "name": "finalizeRound",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "winner", "type": "address"}],
        "outputs": [],
    },
    {
        "type": "event",
        "name": "Joined",
        "anonymous": False,
        "inputs": [
            {"name": "player", "type": "address", "indexed": True},
            {"name": "roundId", "type": "uint256", "indexed": True},
            {"name": "amount", "type": "uint256", "indexed": False},
        ],
    },
]


@dataclass
class RoundInfo:
    id: int
    pot_wei: int
    start_time: int
    end_time: int
    finalized: bool

    @property
    def pot_eth(self) -> str:
        return str(Web3.from_wei(self.pot_wei, 'ether'))


class ChainClient:
    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        private_key: str = '',
        chain_id: Optional[int] = None,
        timeout_sec: int = 10,
        receipt_timeout_sec: int = 120,
        lookback_blocks: int = 5000,
        gas: int = 300_000,
    ):
        self.w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={'timeout': timeout_sec}))
        self.contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=SETTLEMENT_ABI,
        )
        self.account = Account.from_key(private_key) if private_key else None
        self.chain_id = chain_id
        self.receipt_timeout_sec = receipt_timeout_sec
        self.lookback_blocks = lookback_blocks
        self.gas = gas

    @classmethod
    def from_config(cls, config) -> 'ChainClient':
        return cls(
            rpc_url=config['CHAIN_RPC_URL'],
            contract_address=config['CONTRACT_ADDRESS'],
            private_key=config.get('BACKEND_WALLET_PRIVATE_KEY') or '',
            chain_id=config.get('CHAIN_ID'),
            timeout_sec=int(config.get('CHAIN_TIMEOUT_SEC', 10)),
            receipt_timeout_sec=int(config.get('FINALIZE_TIMEOUT_SEC', 120)),
            lookback_blocks=int(config.get('PAYMENT_LOOKBACK_BLOCKS', 5000)),
            gas=int(config.get('FINALIZE_GAS', 300_000)),
        )

    @property
    def can_finalize(self) -> bool:
        return self.account is not None

    @property
    def signer_address(self) -> Optional[str]:
        return self.account.address if self.account else None

    def has_paid(self, wallet: str, round_id: int) -> bool:
        """True only if a Joined(wallet, round_id) event is in the recent block window.

        Fails closed: any RPC error, timeout or bad address counts as unpaid.
        """
        try:
            player = Web3.to_checksum_address(wallet)
            latest = int(self.w3.eth.block_number)
            from_block = max(0, latest - self.lookback_blocks)
            logs = self.contract.events.Joined().get_logs(
                argument_filters={'player': player},
                from_block=from_block,
                to_block=latest,
            )
        except Exception as exc:
            current_app.logger.warning(f"[payment-check] wallet={wallet} round={round_id} rpc failed: {exc}")
            return False
        for log in logs:
            args = log['args']
            if str(args['player']).lower() == wallet.lower() and int(args['roundId']) == int(round_id):
                return True
        return False

    def current_round_info(self) -> RoundInfo:
        try:
            rid, pot, start, end, finalized = self.contract.functions.getCurrentRoundInfo().call()
            return RoundInfo(id=int(rid), pot_wei=int(pot), start_time=int(start), end_time=int(end), finalized=bool(finalized))
        except Exception as exc:
            raise ExternalDependencyError(f'round info unavailable: {exc}') from exc

    def finalize_round(self, winner: str) -> str:
        """Submit finalizeRound(winner) and wait for it to be mined. Returns the tx hash hex."""
        if self.account is None:
            raise ExternalDependencyError('no signer configured')
        try:
            tx = self.contract.functions.finalizeRound(Web3.to_checksum_address(winner)).build_transaction(
                {
                    "from": self.account.address,
                    "nonce": self.w3.eth.get_transaction_count(self.account.address, 'pending'),
                    "gas": self.gas,
                    "gasPrice": self.w3.eth.gas_price,
                    "chainId": self.chain_id or self.w3.eth.chain_id,
                }
            )
            signed = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            current_app.logger.info(f"[finalize-sent] winner={winner} tx={Web3.to_hex(tx_hash)}")
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout_sec)
        except Exception as exc:
            raise ExternalDependencyError(f'finalizeRound failed: {exc}') from exc
        if receipt.get("status") != 1:
            raise ExternalDependencyError(f'finalizeRound reverted: {Web3.to_hex(tx_hash)}')
        return Web3.to_hex(tx_hash)
