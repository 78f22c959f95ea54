"""
MODULE OVERVIEW:
The Rich terminal dashboard for the live vehicle feed.

WHAT IS HAPPENING HERE:
The client runs in the background; every event it hands us updates an in-memory
view keyed by vehicle id. The `initial` snapshot replaces the view, change events
merge into it, and error events go to the timeline. The layout is redrawn four
times a second.
"""

from rich.live import Live
from rich.layout import Layout
from rich.panel import Panel
from rich.table import Table
from collections import deque
from datetime import datetime
import asyncio

from energyrite_live.client.base_client import BaseStreamClient
from energyrite_live.shared.models import StreamMessage

MAX_ROWS = 20


class Visualizer:
    def __init__(self, client: BaseStreamClient, title: str = "EnergyRite live feed"):
        self.client = client
        self.title = title
        self.vehicles: dict = {}
        self.status = "INITIALIZING"
        self.timeline = deque(maxlen=8)

    def on_status_change(self, status: str):
        self.status = status
        ts = datetime.now().strftime("%H:%M:%S")
        self.timeline.appendleft(f"[{ts}] State: {status}")

    def on_event(self, message: StreamMessage):
        ts = datetime.now().strftime("%H:%M:%S")
        data = message.data
        kind = data.get("type")

        if kind == "initial":
            self.vehicles = {row.get("id"): row for row in data.get("data", [])}
            self.timeline.appendleft(f"[{ts}] Snapshot: {len(self.vehicles)} vehicles")
        elif kind == "error":
            self.timeline.appendleft(f"[{ts}] [red]Error: {data.get('message')}[/]")
        else:
            key = data.get("id")
            merged = {**self.vehicles.get(key, {}), **data}
            self.vehicles[key] = merged
            self.timeline.appendleft(f"[{ts}] {kind}: {data.get('plate') or key}")

    def build_table(self) -> Table:
        table = Table(title="Vehicles", expand=True)
        table.add_column("Plate", style="cyan", no_wrap=True)
        table.add_column("Cost code", style="magenta")
        table.add_column("Fuel %", justify="right", style="green")
        table.add_column("Volume", justify="right", style="green")
        table.add_column("Speed", justify="right")
        table.add_column("Updated", style="blue")

        rows = sorted(self.vehicles.values(), key=lambda v: str(v.get("updated_at") or ""), reverse=True)
        for v in rows[:MAX_ROWS]:
            table.add_row(
                str(v.get("plate") or v.get("branch") or "-"),
                str(v.get("cost_code") or "-"),
                str(v.get("fuel_probe_1_level_percentage") or "-"),
                str(v.get("fuel_probe_1_volume_in_tank") or v.get("volume") or "-"),
                str(v.get("speed") or "-"),
                str(v.get("updated_at") or v.get("timestamp") or "-"),
            )
        return table

    def generate_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="main")
        )
        layout["main"].split_row(
            Layout(name="left", ratio=2),
            Layout(name="right", ratio=1)
        )
        layout["right"].split_column(
            Layout(name="stats"),
            Layout(name="timeline"),
        )

        color = "green" if "ACTIVE" in self.status else "yellow" if "WAITING" in self.status else "red"
        layout["header"].update(Panel(f"[{color} bold]{self.title} | Status: {self.status}[/]", style=color))
        layout["left"].update(Panel(self.build_table(), title="Fleet"))

        stats_text = (
            f"Events Received: {self.client.events_received}\n"
            f"Heartbeats: {self.client.heartbeats}\n"
            f"Reconnects: {self.client.reconnect_count}"
        )
        layout["stats"].update(Panel(stats_text, title="Connection Stats"))
        layout["timeline"].update(Panel("\n".join(self.timeline), title="Timeline"))

        return layout

    async def run(self, duration_s: float):
        # Bridge the client hooks
        async def event_hook(e): self.on_event(e)
        async def status_hook(s): self.on_status_change(s)

        self.client.set_callbacks(event_hook, status_hook)

        client_task = asyncio.create_task(self.client.run(duration_s))

        with Live(self.generate_layout(), refresh_per_second=4) as live:
            while not client_task.done():
                live.update(self.generate_layout())
                await asyncio.sleep(0.25)
