import os

import pandas as pd
import streamlit as st

ALLOCATION_NUMERIC = ['invested', 'market_value', 'day_change', 'profit', 'profit_percent',
                      'market_allocation', 'invested_allocation']
HOLDINGS_NUMERIC = ['units', 'invested', 'market_value', 'day_change', 'profit', 'profit_percent', 'xirr']
ACCOUNTS_NUMERIC = ['invested', 'market_value', 'profit', 'profit_percent']
SUMMARY_NUMERIC = ['total_invested', 'total_market_value', 'total_profit', 'profit_percent',
                   'day_change', 'day_change_percent', 'charges']


def _read(csv_dir, filename, numeric_cols):
    try:
        df = pd.read_csv(os.path.join(csv_dir, filename), sep=";")
    except FileNotFoundError:
        st.error(f"{filename} not found in {csv_dir}!")
        return pd.DataFrame(columns=numeric_cols)

    for col in numeric_cols:
        if col in df.columns:
            # xirr stays NaN when unavailable; everything else defaults to 0
            df[col] = pd.to_numeric(df[col], errors='coerce')
            if col != 'xirr':
                df[col] = df[col].fillna(0.0)
    return df


def load_data(csv_dir="./data/report"):
    """
    Loads the exported report CSVs.
    Returns (allocation, holdings, accounts, summary dict).
    """
    allocation = _read(csv_dir, "allocation.csv", ALLOCATION_NUMERIC)
    holdings = _read(csv_dir, "holdings.csv", HOLDINGS_NUMERIC)
    accounts = _read(csv_dir, "accounts.csv", ACCOUNTS_NUMERIC)
    summary_df = _read(csv_dir, "summary.csv", SUMMARY_NUMERIC)

    if not summary_df.empty:
        last_row = summary_df.iloc[-1]
        summary = {
            'As_Of': str(last_row['as_of']) if pd.notna(last_row.get('as_of')) else '',
            'Net_Worth': last_row['total_market_value'],
            'Invested': last_row['total_invested'],
            'Profit': last_row['total_profit'],
            'Profit_Pct': last_row['profit_percent'],
            'Day_Change': last_row['day_change'],
            'Day_Change_Pct': last_row['day_change_percent'],
        }
    elif not allocation.empty:
        # Fall back to the allocation rows when summary.csv is missing
        invested = allocation['invested'].sum()
        market = allocation['market_value'].sum()
        summary = {
            'As_Of': '',
            'Net_Worth': market,
            'Invested': invested,
            'Profit': market - invested,
            'Profit_Pct': (market - invested) / invested * 100 if invested > 0 else 0.0,
            'Day_Change': allocation['day_change'].sum(),
            'Day_Change_Pct': 0.0,
        }
    else:
        summary = {
            'As_Of': '', 'Net_Worth': 0, 'Invested': 0, 'Profit': 0, 'Profit_Pct': 0,
            'Day_Change': 0, 'Day_Change_Pct': 0
        }

    return allocation, holdings, accounts, summary
