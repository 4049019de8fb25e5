"""
Readers for the JSONL traffic log written by the MQTT store.

Each line is expected as:
{"topic": "<base>/grid/power_kw", "payload": {"val": ..., "ack": true, "ts": "..."}}
"""
from __future__ import annotations

import json
import numbers
import os
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd


def parse_ts(ts: str) -> Optional[datetime]:
    # expects ISO like "2026-01-04T13:38:53.134046+00:00"
    try:
        return datetime.fromisoformat(ts)
    except ValueError:
        return None


def tail_lines(path: str, max_lines: int = 4000) -> List[str]:
    if not path or not os.path.exists(path):
        return []
    with open(path, "r", encoding="utf-8") as f:
        lines = f.readlines()
    return lines[-max_lines:]


def topic_to_key(topic: str, base_topic: str) -> Optional[str]:
    prefix = base_topic.rstrip("/") + "/"
    if not topic.startswith(prefix):
        return None
    return topic[len(prefix):].replace("/", ".")


def parse_lines(lines: Iterable[str], base_topic: str) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for line in lines:
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except ValueError:
            continue
        if not isinstance(obj, dict):
            continue
        topic = obj.get("topic")
        payload = obj.get("payload")
        if not isinstance(topic, str) or not isinstance(payload, dict):
            continue

        key = topic_to_key(topic, base_topic)
        ts = parse_ts(payload["ts"]) if isinstance(payload.get("ts"), str) else None
        if key is None or ts is None:
            continue

        rows.append({"ts": ts, "key": key, "val": payload.get("val"), "ack": bool(payload.get("ack", True))})
    return rows


def load_traffic(path: str, base_topic: str, max_lines: Optional[int] = None) -> pd.DataFrame:
    if max_lines is None:
        lines: List[str] = []
        if path and os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                lines = f.readlines()
    else:
        lines = tail_lines(path, max_lines=max_lines)

    rows = parse_lines(lines, base_topic)
    if not rows:
        return pd.DataFrame(columns=["ts", "key", "val", "ack"])
    return pd.DataFrame(rows).sort_values("ts", kind="stable").reset_index(drop=True)


def latest_values(df: pd.DataFrame) -> Dict[str, Any]:
    """Last value seen per key."""
    if df.empty:
        return {}
    last = df.groupby("key", sort=False).tail(1)
    return dict(zip(last["key"], last["val"]))


def is_number(x: Any) -> bool:
    return isinstance(x, numbers.Real) and not isinstance(x, bool)


def numeric_series(df: pd.DataFrame, keys: Iterable[str]) -> pd.DataFrame:
    """
    Wide frame indexed by ts with one column per requested numeric key.
    Gaps are forward filled since the log only carries changes.
    """
    keys = list(keys)
    if df.empty:
        return pd.DataFrame(columns=keys)

    sub = df[df["key"].isin(keys) & df["val"].map(is_number)]
    if sub.empty:
        return pd.DataFrame(columns=keys)

    sub = sub.assign(val=sub["val"].astype(float))
    wide = sub.pivot_table(index="ts", columns="key", values="val", aggfunc="last")
    wide = wide.reindex(columns=[k for k in keys if k in wide.columns])
    return wide.ffill()
