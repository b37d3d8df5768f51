"""
MODULE OVERVIEW:
The Rich terminal dashboard behind `runner.py tail`.

WHAT IS HAPPENING HERE:
The dashboard wires itself in as the subscription's message, error and state
callbacks, then redraws the layout a few times per second from what those
callbacks recorded and from the connection manager's stats.
"""

import asyncio
from collections import deque
from datetime import datetime

from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from authsse.client.subscription import Subscription
from authsse.shared.errors import SSEError
from authsse.shared.models import ConnectionState, EventRecord

STATE_COLORS = {
    ConnectionState.STREAMING: "green",
    ConnectionState.CONNECTING: "yellow",
    ConnectionState.IDLE: "yellow",
}


class Visualizer:
    def __init__(self, subscription: Subscription, event_filter: str | None = None):
        self.subscription = subscription
        self.event_filter = event_filter
        self.recent_events = deque(maxlen=10)
        self.timeline = deque(maxlen=5)
        self.state = ConnectionState.IDLE
        self.last_error: str | None = None

        subscription.on_message = self.on_message
        subscription.on_error = self.on_error
        subscription.on_state_change = self.on_state_change

    def on_state_change(self, state: ConnectionState):
        self.state = state
        ts = datetime.now().strftime("%H:%M:%S")
        self.timeline.appendleft(f"[{ts}] State: {state.value}")

    def on_error(self, error: SSEError):
        self.last_error = f"{type(error).__name__}: {error}"

    def on_message(self, record: EventRecord):
        if self.event_filter and record.event_type != self.event_filter:
            return
        ts = datetime.now().strftime("%H:%M:%S")
        data = record.data if len(record.data) <= 60 else record.data[:60] + "..."
        self.recent_events.appendleft((ts, record.event_type, record.id or "-", data))

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

        color = STATE_COLORS.get(self.state, "red")
        layout["header"].update(Panel(f"[{color} bold]{self.subscription.url} | State: {self.state.value}[/]", style=color))

        table = Table(title="Live Event Feed", expand=True)
        table.add_column("Time", justify="left", style="cyan", no_wrap=True)
        table.add_column("Event", style="magenta")
        table.add_column("Id", style="blue")
        table.add_column("Data", style="green")

        for e in self.recent_events:
            table.add_row(*e)

        layout["left"].update(Panel(table, title="Feed"))

        manager = self.subscription.manager
        stats = manager.stats if manager else {}
        stats_text = (
            f"Events Received: {stats.get('events_received', 0)}\n"
            f"Bytes Received: {stats.get('bytes_received', 0)}\n"
            f"Connected At: {stats.get('connected_at') or '-'}\n"
            f"Last Error: {self.last_error or '-'}"
        )
        layout["stats"].update(Panel(stats_text, title="Connection Stats"))

        layout["timeline"].update(Panel("\n".join(self.timeline), title="Timeline"))

        return layout

    async def run(self, duration_s: float):
        self.subscription.start()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration_s

        try:
            with Live(self.generate_layout(), refresh_per_second=4) as live:
                while loop.time() < deadline:
                    live.update(self.generate_layout())
                    if not self.subscription.active:
                        break
                    await asyncio.sleep(0.25)
                live.update(self.generate_layout())
        finally:
            self.subscription.stop()
