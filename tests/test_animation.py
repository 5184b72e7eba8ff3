"""
Animation planning and WebSocket streaming tests.
"""

import asyncio
import threading

import pytest
from fastapi import WebSocketDisconnect

import animation_service
from animation_service import animation_delay_ms, plan_animation
from errors import InvalidAlgorithm, UnknownElement


def _collect(ws):
    events = []
    while True:
        event = ws.receive_json()
        events.append(event)
        if event["type"] in ("complete", "error"):
            return events


def _steps(events):
    out = []
    for event in events:
        if event["type"] == "node":
            out.append(("node", event["node"]["name"]))
        elif event["type"] == "link":
            out.append(("link", event["link"]["source"], event["link"]["target"]))
    return out


class TestPlan:
    def test_bfs_brick(self, graph):
        plan = plan_animation(graph, "Brick", "bfs")
        nodes = [value for kind, value in plan.steps if kind == "node"]
        links = [value for kind, value in plan.steps if kind == "link"]
        assert nodes == ["Water", "Fire", "Earth", "Air", "Lava", "Stone", "Brick"]
        assert links == [
            ("Fire", "Lava"), ("Earth", "Lava"),
            ("Lava", "Stone"), ("Air", "Stone"),
            ("Stone", "Brick"), ("Fire", "Brick"),
        ]
        # Links only after every node.
        kinds = [kind for kind, _ in plan.steps]
        assert kinds == ["node"] * 7 + ["link"] * 6

    def test_dfs_brick(self, graph):
        plan = plan_animation(graph, "Brick", "dfs")
        assert plan.steps == [
            ("node", "Brick"),
            ("node", "Stone"),
            ("link", ("Stone", "Brick")),
            ("node", "Fire"),
            ("node", "Lava"),
            ("link", ("Fire", "Lava")),
            ("node", "Air"),
            ("node", "Earth"),
            ("link", ("Fire", "Brick")),
            ("link", ("Lava", "Stone")),
            ("link", ("Air", "Stone")),
            ("link", ("Earth", "Lava")),
        ]

    def test_bidirectional_energy(self, graph):
        plan = plan_animation(graph, "Energy", "bidirectional")
        nodes = [value for kind, value in plan.steps if kind == "node"]
        assert nodes == ["Energy", "Water", "Fire", "Earth", "Air"]
        assert [value for kind, value in plan.steps if kind == "link"] == [("Fire", "Energy"), ("Air", "Energy")]

    def test_bidirectional_alternates(self, graph):
        plan = plan_animation(graph, "Swamp", "bidirectional")
        nodes = [value for kind, value in plan.steps if kind == "node"]
        assert nodes[0] == "Swamp"
        assert nodes[1:5] == ["Water", "Fire", "Earth", "Air"]
        assert len(nodes) == len(set(nodes))

    def test_deterministic(self, graph):
        for algo in ("bfs", "dfs", "bidirectional"):
            assert plan_animation(graph, "Swamp", algo).steps == plan_animation(graph, "Swamp", algo).steps

    def test_errors(self, graph):
        with pytest.raises(UnknownElement):
            plan_animation(graph, "Spirit", "bfs")
        with pytest.raises(InvalidAlgorithm):
            plan_animation(graph, "Steam", "astar")

    def test_delay_override(self, monkeypatch):
        monkeypatch.setenv("ANIMATION_STEP_DELAY_MS", "75")
        assert animation_delay_ms() == 75
        assert animation_delay_ms(0) == 0
        monkeypatch.setenv("ANIMATION_STEP_DELAY_MS", "soon")
        assert animation_delay_ms() == 50


class TestWebSocket:
    def test_brick_bfs_stream(self, client):
        with client.websocket_connect("/api/animate/Brick?algorithm=bfs&delayMs=0") as ws:
            events = _collect(ws)

        assert events[0] == {"type": "metadata", "algorithm": "bfs", "element": "Brick"}
        assert events[1] == {"type": "steps", "totalSteps": 13}
        assert events[-1]["type"] == "complete"
        assert events[-1]["nodesVisited"] > 0

        steps = _steps(events)
        assert [s[1] for s in steps if s[0] == "node"] == ["Water", "Fire", "Earth", "Air", "Lava", "Stone", "Brick"]
        assert [s[1:] for s in steps if s[0] == "link"] == [
            ("Fire", "Lava"), ("Earth", "Lava"), ("Lava", "Stone"),
            ("Air", "Stone"), ("Stone", "Brick"), ("Fire", "Brick"),
        ]

        body = events[2:-1]
        assert [e["stepIndex"] for e in body] == list(range(1, 14))
        assert all(e["totalSteps"] == 13 for e in body)
        base = {e["node"]["name"]: e["isBaseNode"] for e in body if e["type"] == "node"}
        assert base["Water"] is True and base["Brick"] is False

    def test_node_image(self, client):
        with client.websocket_connect("/api/animate/Steam?algorithm=dfs&delayMs=0") as ws:
            events = _collect(ws)
        steam = next(e for e in events if e["type"] == "node" and e["node"]["name"] == "Steam")
        assert steam["node"]["imagePath"] == "images/Steam.svg"

    def test_default_algorithm(self, client):
        with client.websocket_connect("/api/animate/Steam") as ws:
            events = _collect(ws)
        assert events[0]["algorithm"] == "bfs"

    def test_unknown_element(self, client):
        with client.websocket_connect("/api/animate/Spirit") as ws:
            event = ws.receive_json()
            assert event["type"] == "error"
            assert event["status"] == 404
            with pytest.raises(WebSocketDisconnect):
                ws.receive_json()

    def test_invalid_algorithm(self, client):
        with client.websocket_connect("/api/animate/Steam?algorithm=astar") as ws:
            event = ws.receive_json()
            assert event["type"] == "error"
            assert event["status"] == 400

    def test_disconnect_during_search_cancels(self, client, monkeypatch):
        search_cancelled = threading.Event()

        def slow_plan(graph, name, algorithm, cancel):
            if cancel.wait(5):
                search_cancelled.set()
            return plan_animation(graph, name, algorithm, cancel)

        monkeypatch.setattr(animation_service, "plan_animation", slow_plan)
        with client.websocket_connect("/api/animate/Brick") as ws:
            ws.close()
            assert search_cancelled.wait(5)

    def test_stream_stops_when_cancelled(self, graph):
        class Recorder:
            def __init__(self):
                self.events = []

            async def send_json(self, event):
                self.events.append(event)

        plan = plan_animation(graph, "Brick", "bfs")
        cancel = threading.Event()
        cancel.set()
        ws = Recorder()
        assert asyncio.run(animation_service.stream_animation(ws, plan, 0, cancel)) == 0
        assert ws.events == []
