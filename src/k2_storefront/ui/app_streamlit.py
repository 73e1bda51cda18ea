"""
Streamlit demo console for the K2 storefront.

Split screen:
- Left: the mock AI shopping agent (chat, product cards, checkout)
- Right: terminal-style merchant log stream from the API

Talks to the running API over HTTP (K2_API_URL, default http://localhost:8000).
"""
import os
import sys
from pathlib import Path

import httpx
import pandas as pd
import streamlit as st

# Add src to path for imports
src_path = Path(__file__).parent.parent.parent
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from k2_storefront.agent.checkout_client import CheckoutClient


API_URL = os.getenv("K2_API_URL", "http://localhost:8000")

DEMO_EMAIL = "shopper@example.com"
DEMO_ADDRESS = {
    "country": "SA",
    "city": "Riyadh",
    "district": "Al Olaya",
    "address_line1": "King Fahd Road 123",
    "postcode": "12211",
}

LEVEL_COLORS = {"debug": "gray", "info": "green", "warn": "orange", "error": "red"}


st.set_page_config(
    page_title="K2 Storefront Demo",
    layout="wide",
    initial_sidebar_state="expanded"
)


@st.cache_resource
def get_http():
    """Get cached HTTP client for the storefront API."""
    return httpx.Client(base_url=API_URL, timeout=10.0)


@st.cache_resource
def get_checkout_client():
    """Get cached checkout client (shares the HTTP client)."""
    return CheckoutClient(client=get_http())


try:
    http = get_http()
    status = http.get("/system/status").json()
except httpx.HTTPError as e:
    st.error(f"Storefront API unreachable at {API_URL}: {e}")
    st.stop()


st.markdown("""
    <style>
        .block-container {
            padding-top: 2rem;
            padding-bottom: 2rem;
        }
        .terminal {
            background-color: #0e1117;
            color: #d0d0d0;
            font-family: 'SFMono-Regular', Menlo, monospace;
            font-size: 0.8rem;
            padding: 10px;
            border-radius: 5px;
        }
    </style>
""", unsafe_allow_html=True)


# ============================================================================
# SIDEBAR: Demo Controls
# ============================================================================
with st.sidebar:
    st.header("🎛️ Demo Controls")

    k2_on = st.toggle("K2 merchandising", value=status["mode"] == "k2")
    if k2_on != (status["mode"] == "k2"):
        http.put("/api/demo/mode", json={"mode": "k2" if k2_on else "baseline"})
        st.rerun()

    identity_on = st.toggle("Shopper identity linked", value=status["has_identity"])
    if identity_on != status["has_identity"]:
        http.put("/api/demo/identity", json={"has_identity": identity_on})
        st.rerun()

    st.divider()
    st.caption(f"{status['products']} products | {status['scenarios_count']} scenarios")
    st.caption(f"API: {API_URL}")

    if st.button("🧹 Reset demo", use_container_width=True):
        http.post("/api/logs/clear")
        for key in ("messages", "results", "order_id"):
            st.session_state.pop(key, None)
        st.rerun()


if 'messages' not in st.session_state:
    st.session_state.messages = []


def run_search(query: str):
    st.session_state.messages.append({"role": "user", "content": query})
    response = http.get("/api/products", params={"q": query, "limit": 6})
    body = response.json()
    st.session_state.results = body

    if body.get("mode") == "k2":
        reply = f"I found {len(body['items'])} curated option(s) from the merchant."
    elif body.get("count"):
        reply = f"Here are {body['count']} product(s) matching your request."
    else:
        reply = "I couldn't find anything for that. Try another search?"
    st.session_state.messages.append({"role": "assistant", "content": reply})


def run_checkout(product_id: str, offer_id=None, correlation_id=None):
    client = get_checkout_client()
    with st.spinner("Placing order with mada..."):
        order_id = client.checkout(
            product_id, DEMO_EMAIL, DEMO_ADDRESS,
            offer_id=offer_id, correlation_id=correlation_id,
        )
    st.session_state.order_id = order_id
    st.session_state.messages.append(
        {"role": "assistant", "content": f"Order placed: **{order_id}**"}
    )


def render_item(item: dict, recommended: dict, correlation_id: str, key_prefix: str):
    with st.container(border=True):
        is_top = recommended and recommended.get("item_id") == item.get("item_id", item["id"])
        st.markdown(f"**{item['title']}**" + ("  ⭐ Recommended" if is_top else ""))
        st.caption(f"{item['brand']} | {item['price']:.2f} {item['currency']}")

        offer_id = None
        for offer in item.get("ranked_offers", []):
            ui = offer["ui"]
            badges = " ".join(f"`{b}`" for b in ui.get("badges", []))
            st.markdown(f"🎁 {ui['title']} {badges}")
            if ui.get("subtitle"):
                st.caption(ui["subtitle"])
            if offer_id is None:
                offer_id = offer["offer_id"]

        if st.button("Buy", key=f"{key_prefix}-{item['id']}"):
            run_checkout(item["id"], offer_id, correlation_id)
            st.rerun()


# ============================================================================
# MAIN CONTENT: SPLIT SCREEN
# ============================================================================
st.title("K2 Storefront Demo")

agent_col, log_col = st.columns([1.2, 1.0], gap="large")

with agent_col:
    st.subheader("🤖 Shopping Agent")

    for message in st.session_state.messages:
        with st.chat_message(message["role"]):
            st.markdown(message["content"])

    results = st.session_state.get("results")
    if results:
        if results.get("mode") == "k2":
            st.caption(f"K2 scenario: `{results.get('scenario_id')}`")
            recommended = results.get("recommended")
        else:
            recommended = {"item_id": results.get("recommended_item_id")}
        for idx, item in enumerate(results.get("items", [])):
            render_item(item, recommended, results.get("correlation_id"), f"item{idx}")

        if results.get("mode") == "k2":
            with st.expander("🔍 K2 debug log"):
                debug = http.get(f"/api/k2-debug/{results['correlation_id']}")
                if debug.status_code == 200:
                    log = debug.json()
                    st.markdown(f"**{log['ranking_rationale']}**")
                    st.json(log["kpi_deltas"])
                    st.dataframe(pd.DataFrame(log["guardrail_checks"]), hide_index=True)
                    if log["item_removals"]:
                        st.dataframe(pd.DataFrame(log["item_removals"]), hide_index=True)
                else:
                    st.caption("Debug log expired.")

    prompt = st.chat_input("What are you shopping for?")
    if prompt:
        run_search(prompt)
        st.rerun()

with log_col:
    st.subheader("🖥️ Merchant Logs")
    if st.button("🔄 Refresh logs"):
        st.rerun()

    events = http.get("/api/logs").json().get("events", [])
    lines = []
    for event in events[-60:]:
        color = LEVEL_COLORS.get(event.get("level"), "gray")
        stamp = event["timestamp"][11:19]
        lines.append(f":{color}[{stamp} [{event['category']}]] {event['message']}")

    with st.container(height=600, border=True):
        if lines:
            st.markdown("  \n".join(lines))
        else:
            st.caption("No events yet.")
