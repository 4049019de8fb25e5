# dashboard.py
#!/usr/bin/env python3
"""
Streamlit Control Panel for the virtual energy plant:
- Grid / PV / storage / EVCS status from the JSONL traffic log
- Scenario buttons and suite start/stop
- Grid limit, storage setpoint, tariff mode
- Chart: grid, PV, storage and EV power (realtime)

Requires:
  pip install -e .

Optional (recommended):
  pip install streamlit-autorefresh

Run:
  streamlit run sim/dashboard.py
"""

import json
import time
from typing import Any, Dict

import streamlit as st
from paho.mqtt import client as mqtt

from vplant.traffic import latest_values, load_traffic, numeric_series


# ----------------------------
# Optional autorefresh
# ----------------------------
def try_autorefresh(interval_ms: int) -> bool:
    try:
        from streamlit_autorefresh import st_autorefresh  # type: ignore
    except ImportError:
        return False
    st_autorefresh(interval=interval_ms, key="__auto_refresh__")
    return True


# ----------------------------
# MQTT
# ----------------------------
def mqtt_publish(host: str, port: int, topic: str, payload: Dict[str, Any]) -> None:
    c = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
    c.connect(host, port, keepalive=30)
    c.loop_start()
    info = c.publish(topic, json.dumps(payload).encode("utf-8"), qos=0)
    info.wait_for_publish(timeout=2.0)
    c.loop_stop()
    c.disconnect()


def send_cmd(host: str, port: int, base_topic: str, key: str, value: Any) -> None:
    # ack=false marks a command, the simulator answers with ack=true
    topic = f"{base_topic}/{key.replace('.', '/')}"
    mqtt_publish(host=host, port=port, topic=topic, payload={"val": value, "ack": False})


def fmt(v: Any, unit: str = "") -> str:
    if v is None:
        return "-"
    if isinstance(v, float):
        return f"{v:.2f}{unit}"
    return f"{v}{unit}"


# ----------------------------
# UI
# ----------------------------
st.set_page_config(page_title="Virtual Plant Panel", layout="wide")
st.title("Virtual Energy Plant: Control Panel")

top1, top2, top3 = st.columns(3)

with top1:
    st.subheader("MQTT")
    mqtt_host = st.text_input("Host", value="127.0.0.1")
    mqtt_port = st.number_input("Port", value=1883, step=1)
    base_topic = st.text_input("Base topic", value="vplant")

with top2:
    st.subheader("Data")
    jsonl_path = st.text_input("Traffic JSONL", value="out/vplant_traffic.jsonl")
    max_lines = st.slider("Read last N lines", 2000, 200000, 40000, step=2000)

with top3:
    st.subheader("Realtime")
    realtime = st.checkbox("Realtime ON", value=True)
    interval_ms = st.slider("Refresh interval (ms)", 500, 5000, 1500, step=100)

st.divider()

# Realtime refresh
if realtime:
    used = try_autorefresh(int(interval_ms))
    if not used:
        time.sleep(interval_ms / 1000.0)
        st.rerun()

df = load_traffic(jsonl_path, base_topic, max_lines=max_lines)
latest = latest_values(df)


def cmd(key: str, value: Any) -> None:
    send_cmd(mqtt_host, int(mqtt_port), base_topic, key, value)


# ----------------------------
# Plant status
# ----------------------------
st.subheader("Plant")

g1, g2, g3, g4, g5, g6 = st.columns(6)
with g1:
    st.metric("Grid (kW)", fmt(latest.get("grid.power_kw")))
with g2:
    st.metric("Grid limit (kW)", fmt(latest.get("grid.limit_kw")))
with g3:
    st.metric("PV (kW)", fmt(latest.get("pv.power_kw")))
with g4:
    st.metric("Storage SoC", fmt(latest.get("storage.soc_pct"), " %"))
with g5:
    st.metric("EV total (kW)", fmt(latest.get("evcs.total_power_kw")))
with g6:
    st.metric("Price (ct/kWh)", fmt(latest.get("tariff.price_ct_per_kwh")))

if latest.get("grid.over_limit"):
    st.error("Grid import above limit")
if latest.get("grid.available") is False:
    st.warning("Grid unavailable (blackout)")

c1, c2, c3 = st.columns(3)
with c1:
    limit_kw = st.number_input("Grid limit (kW)", value=float(latest.get("grid.limit_kw") or 40.0), step=5.0)
    if st.button("Apply grid limit"):
        cmd("grid.limit_kw", float(limit_kw))
with c2:
    set_kw = st.number_input("Storage setpoint (kW, + discharge)", value=float(latest.get("storage.ctrl.power_set_kw") or 0.0), step=5.0)
    if st.button("Apply storage setpoint"):
        cmd("storage.ctrl.power_set_kw", float(set_kw))
with c3:
    mode = st.selectbox("Tariff mode", ["auto", "manual"], index=0 if latest.get("tariff.mode", "auto") == "auto" else 1)
    price = st.number_input("Manual price (ct/kWh)", value=float(latest.get("tariff.price_ct_per_kwh") or 30.0), step=1.0)
    if st.button("Apply tariff"):
        cmd("tariff.mode", mode)
        if mode == "manual":
            cmd("tariff.price_ct_per_kwh", float(price))

st.divider()

# ----------------------------
# Scenarios / suite
# ----------------------------
st.subheader("Scenarios")

s1, s2, s3, s4 = st.columns(4)
with s1:
    st.metric("Active", fmt(latest.get("scenario.active")))
with s2:
    st.metric("Phase", fmt(latest.get("scenario.phase")))
with s3:
    st.metric("Elapsed (s)", fmt(latest.get("scenario.elapsed_s")))
with s4:
    st.metric("Duration (s)", fmt(latest.get("scenario.duration_s")))
st.write(f"Status: **{latest.get('scenario.status', '-')}**")

catalog = []
raw_catalog = latest.get("scenario.catalog_json")
if isinstance(raw_catalog, str) and raw_catalog:
    try:
        catalog = json.loads(raw_catalog)
    except ValueError:
        catalog = []

if not catalog:
    st.info("No scenario catalog in the log yet. Is the simulator running?")
else:
    titles = {s["id"]: f'{s["title"]} [{s["kind"]}]' for s in catalog}
    sid = st.selectbox("Scenario", list(titles), format_func=lambda i: titles[i])
    b1, b2, b3, b4 = st.columns(4)
    with b1:
        if st.button("Apply"):
            cmd("scenario.selected", sid)
            cmd("scenario.ctrl.apply", True)
    with b2:
        if st.button("Start"):
            cmd("scenario.selected", sid)
            cmd("scenario.ctrl.start", True)
    with b3:
        if st.button("Stop"):
            cmd("scenario.ctrl.stop", True)
    with b4:
        if st.button("Reset to baseline"):
            cmd("scenario.ctrl.reset", True)

st.markdown("### Suite")
u1, u2, u3, u4 = st.columns(4)
with u1:
    st.metric("Stage", fmt(latest.get("suite.stage")))
with u2:
    st.metric("Progress", f'{latest.get("suite.index", 0)}/{latest.get("suite.total", 0)}')
with u3:
    if st.button("Start suite"):
        cmd("suite.ctrl.start", True)
with u4:
    if st.button("Stop suite"):
        cmd("suite.ctrl.stop", True)
st.write(f"Current: **{latest.get('suite.current_id') or '-'}**")

with st.expander("Last scenario report"):
    raw_report = latest.get("report.last_json")
    if raw_report:
        st.json(json.loads(raw_report))
    else:
        st.write("-")

st.divider()

# ----------------------------
# Chart: power balance
# ----------------------------
st.subheader("Power balance")

series = numeric_series(df, ["grid.power_kw", "pv.power_kw", "storage.power_kw", "evcs.total_power_kw", "grid.limit_kw"])
if series.empty:
    st.warning("No power telemetry. Check the JSONL path and whether the simulator is running.")
else:
    st.line_chart(series, height=320)

st.caption(f"Commands: {base_topic}/<key path> with ack=false | Telemetry: {base_topic}/<key path> with ack=true")
