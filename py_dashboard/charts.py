import streamlit as st
import plotly.graph_objects as go

ASSET_COLORS = {
    'Stock': '#00e676',
    'ETF': '#2196f3',
    'MF': '#ff9800',
    'Bank': '#9e9e9e',
    'PPF': '#9c27b0',
    'EPF': '#ffd600',
    'NPS': '#ff1744',
    'FD': '#00bcd4',
}


def _layout(fig, height=320):
    fig.update_layout(
        template="plotly_dark",
        paper_bgcolor='rgba(0,0,0,0)',
        plot_bgcolor='rgba(0,0,0,0)',
        margin=dict(l=0, r=0, t=20, b=0),
        height=height,
    )
    return fig


def build_allocation_pie(allocation, value_col='market_value'):
    """Donut of the asset classes with a non-zero value."""
    df = allocation[allocation[value_col] > 0] if not allocation.empty else allocation
    fig = go.Figure(go.Pie(
        labels=df['asset_class'] if not df.empty else [],
        values=df[value_col] if not df.empty else [],
        hole=0.45,
        marker=dict(colors=[ASSET_COLORS.get(a, '#607d8b') for a in (df['asset_class'] if not df.empty else [])]),
        sort=False,
    ))
    return _layout(fig)


def build_profit_bar(allocation):
    """Profit per asset class, green for gains and red for losses."""
    fig = go.Figure()
    if not allocation.empty:
        fig.add_trace(go.Bar(
            x=allocation['asset_class'],
            y=allocation['profit'],
            marker_color=['#00e676' if p >= 0 else '#ff1744' for p in allocation['profit']],
            name='Profit',
        ))
    fig.update_layout(yaxis=dict(tickformat=",.0f"), showlegend=False)
    return _layout(fig)


def build_account_bar(accounts):
    fig = go.Figure()
    if not accounts.empty:
        fig.add_trace(go.Bar(x=accounts['account_name'], y=accounts['invested'], name='Invested', marker_color='#2196f3'))
        fig.add_trace(go.Bar(x=accounts['account_name'], y=accounts['market_value'], name='Market Value', marker_color='#00e676'))
    fig.update_layout(barmode='group', yaxis=dict(tickformat=",.0f"))
    return _layout(fig)


def render_charts_section(allocation, accounts):
    """Renders allocation, profit and per account charts."""
    basis = st.radio("Allocation basis", ["Market Value", "Invested"], horizontal=True, key="allocation_basis")
    value_col = 'market_value' if basis == "Market Value" else 'invested'

    col1, col2 = st.columns(2)
    with col1:
        st.subheader("Allocation")
        st.plotly_chart(build_allocation_pie(allocation, value_col), use_container_width=True)
    with col2:
        st.subheader("Profit by Asset Class")
        st.plotly_chart(build_profit_bar(allocation), use_container_width=True)
    st.markdown("---")

    st.subheader("Accounts")
    st.plotly_chart(build_account_bar(accounts), use_container_width=True)
    st.markdown("---")


def render_holdings_table(holdings):
    if holdings.empty:
        st.info("No holdings.")
        return
    classes = sorted(holdings['asset_class'].dropna().unique())
    selected = st.multiselect("Asset classes", classes, default=classes, key="holdings_filter")
    view = holdings[holdings['asset_class'].isin(selected)]
    st.dataframe(view.sort_values('market_value', ascending=False), use_container_width=True, hide_index=True)
