"""
Sweep transaction builder.

Builds one transaction spending every discovered output to a single
destination output worth the swept balance minus the estimated fee.
"""

from __future__ import annotations

from loguru import logger

from hdsweep.config import SweepConfig
from hdsweep.errors import InsufficientFundsForFee, NoFundsFound
from hdsweep.wallet.address import address_to_scriptpubkey
from hdsweep.wallet.fees import FeeEstimator
from hdsweep.wallet.models import SweepData
from hdsweep.wallet.signing import MultisigSigner
from hdsweep.wallet.transaction import (
    SignedTransaction,
    SweepInput,
    TxOutput,
    UnsignedTransaction,
)


def collect_inputs(sweep_data: SweepData) -> list[SweepInput]:
    """Flatten every discovered output into an input carrying its path and redeem script."""
    return [
        SweepInput(
            txid=utxo.txid,
            vout=utxo.vout,
            value=utxo.value,
            script_pubkey=utxo.script_pubkey,
            address=address,
            path=entry.path,
            redeem_script=entry.redeem_script,
        )
        for address, entry in sweep_data.address_utxos.items()
        for utxo in entry.utxos
    ]


class SweepTransactionBuilder:
    def __init__(
        self,
        config: SweepConfig,
        signer: MultisigSigner,
        fee_estimator: FeeEstimator | None = None,
    ):
        self.config = config
        self.network = config.bitcoin_network
        self.signer = signer
        self.fee_estimator = fee_estimator or FeeEstimator(config.fee_per_kb)

    def build_unsigned(self, sweep_data: SweepData, destination: str) -> UnsignedTransaction:
        """
        Build the unsigned sweep.

        Raises:
            NoFundsFound: discovery found nothing to sweep
            InsufficientFundsForFee: the fee would leave less than the dust limit
            InvalidAddress: destination is not an address on this network
        """
        if sweep_data.total_balance == 0:
            raise NoFundsFound(sweep_data.total_addresses_searched)

        inputs = collect_inputs(sweep_data)
        balance = sum(inp.value for inp in inputs)

        script_pubkey = address_to_scriptpubkey(destination, self.network)
        tx = UnsignedTransaction(
            inputs=inputs,
            outputs=[TxOutput(address=destination, value=balance, script_pubkey=script_pubkey)],
        )

        # Estimate on the complete shape, then take the fee out of the single output
        fee = self.fee_estimator.estimate_fee(tx)
        send_amount = balance - fee
        if send_amount < self.config.dust_threshold:
            raise InsufficientFundsForFee(balance, fee, self.config.dust_threshold)

        tx.outputs[0] = TxOutput(
            address=destination, value=send_amount, script_pubkey=script_pubkey
        )
        tx.fee = fee

        logger.debug(
            f"Built sweep of {len(inputs)} inputs: {balance} sats in, "
            f"{send_amount} sats to {destination}, fee {fee} sats"
        )
        return tx

    def build_sweep_transaction(
        self, sweep_data: SweepData, destination: str
    ) -> SignedTransaction:
        """Build and sign the sweep. Either returns a fully signed transaction or raises."""
        logger.info(f"Creating sweep transaction to address {destination}")
        tx = self.build_unsigned(sweep_data, destination)

        logger.info("Signing transaction")
        return self.signer.sign(tx, destination)
