"""Market feed: the daily per-symbol snapshot produced by the scraper."""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from nepse_advisor.records import MarketObservation
from nepse_advisor.sector_mapping import guess_sector

logger = logging.getLogger(__name__)

# Snapshot column aliases -> observation fields
COLUMN_ALIASES = {
    'Symbol': 'symbol',
    'Company Name': 'companyName',
    'company_name': 'companyName',
    'Sector': 'sector',
    'LTP': 'ltp',
    'Trade Quantity': 'volume',
    'Volume': 'volume',
    'Num Trades': 'transactions',
    '% Change': 'percentChange',
    'percent_change': 'percentChange',
}

class MarketFeed:
    """Source of today's market snapshot."""

    def fetch_live_market_data(self) -> List[MarketObservation]:
        """Return today's observations; an empty list means no data."""
        raise NotImplementedError

class CsvMarketFeed(MarketFeed):
    """Reads a snapshot file (CSV or Parquet) written by the scraper."""
    
    def __init__(self, path: Path, sector_overrides: Optional[Dict[str, str]] = None):
        """Initialize the feed.
        
        Args:
            path: Snapshot file
            sector_overrides: Symbol to sector mapping applied before guessing
        """
        self.path = Path(path)
        self.sector_overrides = sector_overrides or {}

    def _read_frame(self) -> pd.DataFrame:
        if self.path.suffix == '.parquet':
            return pd.read_parquet(self.path)
        return pd.read_csv(self.path, dtype=str, keep_default_na=False)

    def fetch_live_market_data(self) -> List[MarketObservation]:
        """Parse the snapshot into observations.

        Raises:
            FileNotFoundError: If the snapshot file does not exist
            MalformedRecordError: If a row has a non-numeric price
        """
        if not self.path.exists():
            raise FileNotFoundError(f"Market snapshot not found: {self.path}")

        df = self._read_frame().rename(columns=COLUMN_ALIASES)
        if df.empty:
            logger.warning(f"Market snapshot {self.path} is empty")
            return []

        observations = []
        for record in df.to_dict('records'):
            symbol = str(record.get('symbol', '')).strip()
            if not symbol:
                continue
            sector = self.sector_overrides.get(symbol) or str(record.get('sector') or '').strip()
            if not sector:
                sector = guess_sector(str(record.get('companyName') or ''), symbol)
            record['sector'] = sector
            observations.append(MarketObservation.from_dict(record))

        logger.info(f"Read {len(observations)} observations from {self.path}")
        return observations
