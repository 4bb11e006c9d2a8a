import os
import sys

import streamlit as st

# Page modules live next to this script
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from data_loader import load_data
from charts import render_charts_section, render_holdings_table

# --- Page Config ---
st.set_page_config(
    page_title="Portfolio Dashboard",
    layout="wide",
    initial_sidebar_state="collapsed"
)

# --- Title ---
st.title("Portfolio Dashboard")

CSV_DIR = os.environ.get("PORTFOLIO_CSV_DIR", "./data/report")


# --- Data Loading ---
@st.cache_data(ttl=60)
def get_data(csv_dir):
    return load_data(csv_dir)


allocation, holdings, accounts, summary = get_data(CSV_DIR)

# 1. Summary
if summary['As_Of']:
    st.caption(f"As of {summary['As_Of']}")
c1, c2, c3, c4 = st.columns(4)
c1.metric("Net Worth", f"₹{summary['Net_Worth']:,.0f}")
c2.metric("Invested", f"₹{summary['Invested']:,.0f}")
c3.metric("Profit", f"₹{summary['Profit']:,.0f}", f"{summary['Profit_Pct']:.2f}%")
c4.metric("Day Change", f"₹{summary['Day_Change']:,.0f}", f"{summary['Day_Change_Pct']:.2f}%")
st.markdown("---")

# 2. Charts
render_charts_section(allocation, accounts)

# 3. Holdings
st.subheader("Holdings")
render_holdings_table(holdings)
