"""
Dataset fetch + loader (CSV/XLSX -> StormRecord list)
=====================================================

The NOAA Storm Database is distributed as one bzip2-compressed CSV. This
module:
- downloads it once and caches it by file name (`fetch_dataset`),
- reads it with pandas and converts each row into a `StormRecord`.

Key ideas:
- We try multiple possible column names because exports differ
  (raw NOAA headers like EVTYPE vs. snake_case headers).
- Blank or garbage numbers become 0; blank scale codes become None.
- Unparseable begin dates become None and are COUNTED, so the report can
  say how many rows fell out of the date window for that reason.
- The loader never edits the source file.
"""

from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import unquote, urlparse
import re

import numpy as np
import pandas as pd
import requests

from .config import DEFAULT_CACHE_DIR, DEFAULT_DATASET_URL
from .models import LoadedDataset, StormRecord

# NOAA writes begin dates like "4/18/1950 0:00:00"
NOAA_DATE_FORMAT = "%m/%d/%Y %H:%M:%S"

COLUMN_ALIASES = {
    "event_type": ("EVTYPE", "Event Type", "event_type"),
    "begin_date": ("BGN_DATE", "Begin Date", "begin_date"),
    "fatalities": ("FATALITIES", "Fatalities", "deaths"),
    "injuries": ("INJURIES", "Injuries"),
    "property_damage_value": ("PROPDMG", "Property Damage", "property_damage_value"),
    "property_damage_scale": ("PROPDMGEXP", "Property Damage Exp", "property_damage_scale"),
    "crop_damage_value": ("CROPDMG", "Crop Damage", "crop_damage_value"),
    "crop_damage_scale": ("CROPDMGEXP", "Crop Damage Exp", "crop_damage_scale"),
}

# ---------------- Fetch / cache ----------------

def dataset_filename(url: str) -> str:
    """Local cache name for a dataset URL ("...%2FStormData.csv.bz2" -> "StormData.csv.bz2")."""
    name = unquote(urlparse(url).path).rsplit("/", 1)[-1]
    if not name:
        raise ValueError(f"Cannot derive a file name from URL: {url}")
    return name


def fetch_dataset(
    url: str = DEFAULT_DATASET_URL,
    cache_dir: Union[str, Path] = DEFAULT_CACHE_DIR,
    timeout: float = 60.0,
) -> Path:
    """Return the cached copy of `url`, downloading it first if it is absent."""
    cache = Path(cache_dir)
    target = cache / dataset_filename(url)
    if target.exists():
        return target

    cache.mkdir(parents=True, exist_ok=True)
    print("Downloading dataset...")
    print(f"Source: {url}")
    print(f"Target: {target}")

    partial = target.with_name(target.name + ".part")
    with requests.get(url, stream=True, timeout=timeout) as response:
        response.raise_for_status()
        with open(partial, "wb") as f:
            for chunk in response.iter_content(chunk_size=1 << 16):
                f.write(chunk)
    partial.replace(target)

    print(f"Downloaded {target.stat().st_size / 1024 / 1024:.1f} MB")
    return target

# ---------------- Column helpers ----------------

def _norm(s: str) -> str:
    return re.sub(r"[^a-z0-9]+", "", str(s).lower())

def _col(df: pd.DataFrame, *names: str) -> str:
    cols = list(df.columns)
    for n in names:
        if n in cols:
            return n
    norm_map = {_norm(c): c for c in cols}
    for n in names:
        nn = _norm(n)
        if nn in norm_map:
            return norm_map[nn]
    raise KeyError(f"Missing required column. Tried={names}. Available={cols}")

def _numbers(s: pd.Series) -> pd.Series:
    """Numeric column with blanks/garbage/inf as 0 and negatives clipped to 0."""
    nums = pd.to_numeric(s, errors="coerce").replace([np.inf, -np.inf], np.nan)
    return nums.fillna(0).clip(lower=0)

def _scale_codes(s: pd.Series) -> List[Optional[str]]:
    codes = s.astype("string").str.strip()
    return [None if (pd.isna(c) or c == "") else str(c) for c in codes]

def parse_begin_dates(s: pd.Series) -> pd.Series:
    """Parse NOAA begin dates; rows that still fail become NaT."""
    raw = s.astype("string").fillna("").str.strip()
    parsed = pd.to_datetime(raw, format=NOAA_DATE_FORMAT, errors="coerce")
    retry = (parsed.isna() & (raw != "")).to_numpy(dtype=bool)
    if retry.any():
        parsed.loc[retry] = pd.to_datetime(raw[retry], format="ISO8601", errors="coerce")
    return parsed

# ---------------- Loading ----------------

def read_table(path: Union[str, Path]) -> pd.DataFrame:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Dataset not found: {p}")
    if p.suffix.lower() in (".xlsx", ".xlsm"):
        df = pd.read_excel(p, engine="openpyxl")
    else:
        # compression (.bz2/.gz/.zip) is inferred from the extension
        df = pd.read_csv(p, low_memory=False)
    df.rename(columns={c: str(c).strip() for c in df.columns}, inplace=True)
    return df


def records_from_frame(df: pd.DataFrame) -> LoadedDataset:
    """Convert a raw table into StormRecords (no file I/O)."""
    cols = {key: _col(df, *aliases) for key, aliases in COLUMN_ALIASES.items()}

    event_types = df[cols["event_type"]].astype("string").fillna("").str.strip()
    dates = parse_begin_dates(df[cols["begin_date"]])
    fatalities = _numbers(df[cols["fatalities"]]).astype(np.int64)
    injuries = _numbers(df[cols["injuries"]]).astype(np.int64)
    prop_val = _numbers(df[cols["property_damage_value"]]).astype(float)
    crop_val = _numbers(df[cols["crop_damage_value"]]).astype(float)
    prop_exp = _scale_codes(df[cols["property_damage_scale"]])
    crop_exp = _scale_codes(df[cols["crop_damage_scale"]])

    records: List[StormRecord] = []
    rows = zip(event_types, dates, fatalities, injuries, prop_val, prop_exp, crop_val, crop_exp)
    for i, (ev, when, fat, inj, pv, pe, cv, ce) in enumerate(rows):
        records.append(StormRecord(
            row_id=i,
            event_type=str(ev),
            begin_date=None if pd.isna(when) else when.to_pydatetime(),
            fatalities=int(fat),
            injuries=int(inj),
            property_damage_value=float(pv),
            property_damage_scale=pe,
            crop_damage_value=float(cv),
            crop_damage_scale=ce,
        ))
    return LoadedDataset(records=records, source="<frame>", unparsed_dates=int(dates.isna().sum()))


def load_storm_table(path: Union[str, Path]) -> LoadedDataset:
    """Load the storm table at `path`. Missing file/columns are fatal."""
    df = read_table(path)
    ds = records_from_frame(df)
    print(f"Read {len(ds.records)} rows from {Path(path).name}")
    if ds.unparsed_dates:
        print(f"Note: {ds.unparsed_dates} rows have an unparseable begin date and are outside every window")
    return LoadedDataset(records=ds.records, source=str(path), unparsed_dates=ds.unparsed_dates)
