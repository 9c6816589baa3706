"""String codecs for cached payloads."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from io import StringIO
from typing import Any

import pandas as pd


@dataclass(frozen=True)
class Codec:
    encode: Callable[[Any], str]
    decode: Callable[[str], Any]


def _json_encode(value: Any) -> str:
    return json.dumps(value, default=str)


def frame_to_json(frame: pd.DataFrame) -> str:
    # The table orient embeds a schema so dtypes survive the round trip.
    return frame.to_json(orient="table", date_format="iso", index=False)


def frame_from_json(payload: str) -> pd.DataFrame:
    return pd.read_json(StringIO(payload), orient="table")


JSON_CODEC = Codec(encode=_json_encode, decode=json.loads)
FRAME_CODEC = Codec(encode=frame_to_json, decode=frame_from_json)
