"""
Sector mapping module.

Classifies listed companies into NEPSE sectors from their name and symbol, with
an optional symbol-to-sector override file.
"""

import logging
from pathlib import Path
from typing import Dict

import pandas as pd

from nepse_advisor.config import DEFAULT_SECTOR

logger = logging.getLogger(__name__)

def guess_sector(name: str, symbol: str) -> str:
    """Guess a company's sector from keywords in its name and symbol."""
    n = (name or '').lower()
    s = (symbol or '').lower()

    if 'life insurance' in n or 'lic' in s or 'life' in s:
        return 'Life Insurance'
    if 'insurance' in n:
        return 'Non-Life Insurance'
    if 'development bank' in n:
        return 'Development Bank'
    if 'bank' in n:
        return 'Commercial Bank'
    if 'hydro' in n or 'power' in n or 'hpc' in s or 'project' in s:
        return 'Hydropower'
    if 'finance' in n:
        return 'Finance'
    if 'laghubitta' in n or 'microfinance' in n:
        return 'Microfinance'
    if any(k in n for k in ('mutual fund', 'equity fund', 'scheme', 'growth fund')):
        return 'Mutual Fund'
    if 'debenture' in n or 'bond' in n:
        return 'Corporate Debenture'
    if 'hotel' in n or 'resort' in n:
        return 'Hotel & Tourism'
    if 'cement' in n or 'shivm' in n or 'hdl' in n:
        return 'Manufacturing'
    if 'invest' in n or 'nric' in n or 'hidcl' in n:
        return 'Investment'
    return DEFAULT_SECTOR

def load_sector_mapping(mapping_file: Path) -> Dict[str, str]:
    """Load a symbol to sector override table.

    Args:
        mapping_file: CSV or Parquet file with ``symbol`` and ``sector`` columns

    Returns:
        Dict mapping symbols to sectors (empty if the file does not exist)
    """
    mapping_file = Path(mapping_file)
    if not mapping_file.exists():
        logger.warning(f"Sector mapping file not found: {mapping_file}")
        return {}

    if mapping_file.suffix == '.parquet':
        df = pd.read_parquet(mapping_file)
    else:
        df = pd.read_csv(mapping_file)

    missing_cols = {'symbol', 'sector'} - set(df.columns)
    if missing_cols:
        raise ValueError(f"Missing required columns: {missing_cols}")

    df = df.dropna(subset=['symbol', 'sector'])
    return dict(zip(df['symbol'].astype(str).str.strip(), df['sector'].astype(str).str.strip()))

def save_sector_mapping(mapping: Dict[str, str], mapping_file: Path) -> None:
    """Save a symbol to sector table as Parquet."""
    mapping_file = Path(mapping_file)
    mapping_file.parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame({'symbol': list(mapping.keys()), 'sector': list(mapping.values())})
    df.to_parquet(mapping_file, index=False)
