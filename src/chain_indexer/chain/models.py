"""Block data as served by a bitcoind-compatible node (``getblock <hash> 2``).

The same shapes are used for blocks read back from the block archive:
:meth:`Block.to_document` produces a JSON document that
:meth:`Block.from_rpc` accepts again, with amounts as exact decimal strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from chain_indexer.ledger.amount import to_amount, to_str

if TYPE_CHECKING:
    from decimal import Decimal


@dataclass(frozen=True)
class ScriptPubKey:
    """Locking script metadata of an output."""

    hex: str = ""
    type: str = ""
    addresses: tuple[str, ...] = ()

    @classmethod
    def from_rpc(cls, data: dict[str, Any]) -> ScriptPubKey:
        # Older nodes report an ``addresses`` list, newer ones a single ``address``.
        addresses = data.get("addresses")
        if addresses is None:
            address = data.get("address")
            addresses = [address] if address else []
        return cls(
            hex=data.get("hex", ""),
            type=data.get("type", ""),
            addresses=tuple(addresses),
        )

    def to_document(self) -> dict[str, Any]:
        return {"hex": self.hex, "type": self.type, "addresses": list(self.addresses)}


@dataclass(frozen=True)
class Vin:
    """A transaction input."""

    txid: str = ""
    vout: int = 0
    coinbase: str = ""
    sequence: int = 0

    @classmethod
    def from_rpc(cls, data: dict[str, Any]) -> Vin:
        return cls(
            txid=data.get("txid", ""),
            vout=int(data.get("vout", 0)),
            coinbase=data.get("coinbase", ""),
            sequence=int(data.get("sequence", 0)),
        )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"sequence": self.sequence}
        if self.coinbase:
            doc["coinbase"] = self.coinbase
        if self.txid:
            doc["txid"] = self.txid
            doc["vout"] = self.vout
        return doc


@dataclass(frozen=True)
class Vout:
    """A transaction output."""

    value: Decimal
    n: int
    script_pub_key: ScriptPubKey = field(default_factory=ScriptPubKey)

    @classmethod
    def from_rpc(cls, data: dict[str, Any]) -> Vout:
        return cls(
            value=to_amount(data["value"]),
            n=int(data["n"]),
            script_pub_key=ScriptPubKey.from_rpc(data.get("scriptPubKey", {})),
        )

    @property
    def addresses(self) -> tuple[str, ...]:
        return self.script_pub_key.addresses

    def to_document(self) -> dict[str, Any]:
        return {
            "value": to_str(self.value),
            "n": self.n,
            "scriptPubKey": self.script_pub_key.to_document(),
        }


@dataclass(frozen=True)
class Transaction:
    """A transaction inside a block."""

    txid: str
    time: int = 0
    vin: tuple[Vin, ...] = ()
    vout: tuple[Vout, ...] = ()

    @classmethod
    def from_rpc(cls, data: dict[str, Any], *, block_time: int = 0) -> Transaction:
        return cls(
            txid=data["txid"],
            time=int(data.get("time") or block_time),
            vin=tuple(Vin.from_rpc(v) for v in data.get("vin", [])),
            vout=tuple(Vout.from_rpc(v) for v in data.get("vout", [])),
        )

    @property
    def is_coinbase(self) -> bool:
        """Single input with no referenced txid and a coinbase script."""
        return len(self.vin) == 1 and bool(self.vin[0].coinbase) and not self.vin[0].txid

    def to_document(self) -> dict[str, Any]:
        return {
            "txid": self.txid,
            "time": self.time,
            "vin": [v.to_document() for v in self.vin],
            "vout": [v.to_document() for v in self.vout],
        }


@dataclass(frozen=True)
class Block:
    """A block with its ordered transactions."""

    hash: str
    height: int
    time: int = 0
    tx: tuple[Transaction, ...] = ()
    previous_hash: str = ""

    @classmethod
    def from_rpc(cls, data: dict[str, Any]) -> Block:
        """Build a block from a verbosity-2 ``getblock`` result or an archived document.

        Raises:
            ValueError: If the transactions are not expanded (verbosity 1).
        """
        block_time = int(data.get("time", 0))
        txs = data.get("tx", [])
        if any(isinstance(t, str) for t in txs):
            msg = f"block {data.get('hash')} carries txids only; fetch it with verbosity 2"
            raise ValueError(msg)
        return cls(
            hash=data["hash"],
            height=int(data["height"]),
            time=block_time,
            tx=tuple(Transaction.from_rpc(t, block_time=block_time) for t in txs),
            previous_hash=data.get("previousblockhash", ""),
        )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "hash": self.hash,
            "height": self.height,
            "time": self.time,
            "tx": [t.to_document() for t in self.tx],
        }
        if self.previous_hash:
            doc["previousblockhash"] = self.previous_hash
        return doc
