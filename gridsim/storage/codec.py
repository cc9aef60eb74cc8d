# gridsim/storage/codec.py
from __future__ import annotations

import pyarrow as pa
import pyarrow.parquet as pq

from gridsim.core.types import DayBlob

DAY_BLOB_SCHEMA = pa.schema(
    [
        ("offset", pa.int32()),     # seconds since UTC midnight
        ("price", pa.float64()),
    ]
)

_META_KEYS = ("symbol", "day", "start_ts", "end_ts")


def day_blob_to_table(blob: DayBlob) -> pa.Table:
    offsets = [int(o) for o, _ in blob.compact]
    prices = [float(p) for _, p in blob.compact]
    table = pa.Table.from_arrays(
        [pa.array(offsets, pa.int32()), pa.array(prices, pa.float64())],
        schema=DAY_BLOB_SCHEMA,
    )
    meta = {
        b"symbol": blob.symbol.encode(),
        b"day": blob.day.encode(),
        b"start_ts": str(blob.start_ts).encode(),
        b"end_ts": str(blob.end_ts).encode(),
    }
    return table.replace_schema_metadata(meta)


def table_to_day_blob(table: pa.Table) -> DayBlob:
    meta = table.schema.metadata or {}
    missing = [k for k in _META_KEYS if k.encode() not in meta]
    if missing:
        raise ValueError(f"day blob metadata missing: {missing}")

    offsets = table.column("offset").to_pylist()
    prices = table.column("price").to_pylist()
    return DayBlob(
        symbol=meta[b"symbol"].decode(),
        day=meta[b"day"].decode(),
        compact=tuple(zip(offsets, prices)),
        start_ts=int(meta[b"start_ts"]),
        end_ts=int(meta[b"end_ts"]),
    )


def encode_day_blob(blob: DayBlob) -> bytes:
    """DayBlob → parquet(zstd) bytes，只在持久化边界使用"""
    sink = pa.BufferOutputStream()
    pq.write_table(day_blob_to_table(blob), sink, compression="zstd")
    return sink.getvalue().to_pybytes()


def decode_day_blob(data: bytes) -> DayBlob:
    return table_to_day_blob(pq.read_table(pa.BufferReader(data)))
