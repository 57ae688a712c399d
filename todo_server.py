#!/usr/bin/env python3
"""
todolanes server
----------------
JSON API over the to-do board. Each browser gets its own TodoApp (its own
auth session and board state), keyed by a client id in the signed Flask
session cookie.

Usage:
    python todo_server.py --config todolanes.yaml

API:
    GET  /health                     → { status, backend }
    GET  /api/state                  → { screen, route, user, notices, board }
    POST /api/screen                 → JSON body: { screen: "login"|"signup" }
    POST /api/signup                 → JSON body: { email, password }
    POST /api/login                  → JSON body: { email, password }
    POST /api/logout
    GET  /api/board                  → { lists: [{ id, name, lanes }], ... }
    PUT  /api/list-name              → JSON body: { value }
    POST /api/lists                  → JSON body: { name }
    PUT  /api/lists/<id>/draft       → JSON body: { field, value }
    POST /api/lists/<id>/tasks       → JSON body: { title, description, dueDate, priority }
    POST /api/drag                   → JSON body: { taskId, listId }
    POST /api/drop                   → JSON body: { listId, priority }
"""

import argparse
import asyncio
import logging
import sys
import threading
import uuid
from collections import OrderedDict
from functools import wraps
from typing import Dict

from flask import Flask, jsonify, request, session

from pkg.todo.app import TodoApp
from pkg.todo.config import Config, ConfigError, build_backend
from pkg.todo.navigation import Screen
from pkg.todo.schema import DRAFT_FIELDS, Priority

logger = logging.getLogger("todolanes")


def create_app(cfg: Config) -> Flask:
    app = Flask(__name__)
    app.secret_key = cfg.secret_key

    # Least recently used first
    clients: "OrderedDict[str, TodoApp]" = OrderedDict()
    client_locks: Dict[str, threading.Lock] = {}
    registry_lock = threading.Lock()
    app.extensions["todolanes_clients"] = clients

    # ── Per-client state ─────────────────────────────────────────────────────

    def drop_client(client_id: str) -> None:
        """Forget a client and stop its session reactions. Caller holds registry_lock."""
        todo = clients.pop(client_id, None)
        client_locks.pop(client_id, None)
        if todo is not None:
            todo.close()

    def evict_idle(keep: str) -> None:
        for client_id in list(clients):
            if len(clients) <= int(cfg.max_clients):
                return
            if client_id == keep or client_locks[client_id].locked():
                continue
            logger.info(f"Evicting idle client {client_id[:8]}")
            drop_client(client_id)

    def current_client():
        """Return (TodoApp, lock) for the requesting browser, creating it on first use."""
        client_id = session.get("client_id")
        if not client_id:
            client_id = uuid.uuid4().hex
            session["client_id"] = client_id
        with registry_lock:
            todo = clients.get(client_id)
            if todo is None:
                auth, store = build_backend(cfg)
                start = Screen(session.pop("start_screen", Screen.SIGNUP.value))
                todo = clients[client_id] = TodoApp(auth, store, start=start)
                client_locks[client_id] = threading.Lock()
                evict_idle(client_id)
            clients.move_to_end(client_id)
            return todo, client_locks[client_id]

    def release_client() -> None:
        """Drop the requesting browser's state; its next request starts on sign-in."""
        client_id = session.pop("client_id", None)
        session["start_screen"] = Screen.LOGIN.value
        if client_id:
            with registry_lock:
                drop_client(client_id)

    def run(todo: TodoApp, fn, *args):
        """Run one board/session coroutine and let its background refreshes settle."""
        async def _run():
            result = await fn(*args)
            await todo.board.drain()
            return result
        return asyncio.run(_run())

    def with_client(f):
        """Decorator: pass the client's TodoApp, one request per client at a time."""
        @wraps(f)
        def decorated(*args, **kwargs):
            todo, lock = current_client()
            with lock:
                return f(todo, *args, **kwargs)
        return decorated

    def require_session(f):
        """Decorator: reject board calls unless signed in and on the list view."""
        @wraps(f)
        def decorated(todo: TodoApp, *args, **kwargs):
            if todo.user is None or todo.screen != Screen.TODOLIST:
                return jsonify({"error": "Not signed in"}), 401
            return f(todo, *args, **kwargs)
        return decorated

    def body() -> dict:
        return request.get_json(force=True, silent=True) or {}

    def state_of(todo: TodoApp) -> dict:
        state = todo.state()
        state["board"] = todo.board.snapshot() if todo.user else None
        return state

    # ── Routes ───────────────────────────────────────────────────────────────

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "backend": cfg.backend})

    @app.route("/api/state")
    @with_client
    def api_state(todo: TodoApp):
        return jsonify(state_of(todo))

    @app.route("/api/screen", methods=["POST"])
    @with_client
    def api_screen(todo: TodoApp):
        name = str(body().get("screen", "")).strip().lower()
        try:
            screen = Screen(name)
        except ValueError:
            return jsonify({"error": f"Invalid screen: {name}"}), 400
        if not todo.show(screen):
            return jsonify({"error": "Not signed in"}), 401
        return jsonify(state_of(todo))

    @app.route("/api/signup", methods=["POST"])
    @with_client
    def api_signup(todo: TodoApp):
        data = body()
        ok = run(todo, todo.session.sign_up, data.get("email", ""), data.get("password", ""))
        return jsonify({"ok": ok, **state_of(todo)}), 200 if ok else 400

    @app.route("/api/login", methods=["POST"])
    @with_client
    def api_login(todo: TodoApp):
        data = body()
        ok = run(todo, todo.session.sign_in, data.get("email", ""), data.get("password", ""))
        return jsonify({"ok": ok, **state_of(todo)}), 200 if ok else 401

    @app.route("/api/logout", methods=["POST"])
    @with_client
    @require_session
    def api_logout(todo: TodoApp):
        ok = run(todo, todo.board.logout)
        state = state_of(todo)
        if ok:
            release_client()
        return jsonify({"ok": ok, **state}), 200 if ok else 502

    @app.route("/api/board")
    @with_client
    @require_session
    def api_board(todo: TodoApp):
        return jsonify(todo.board.snapshot())

    @app.route("/api/list-name", methods=["PUT"])
    @with_client
    @require_session
    def api_list_name(todo: TodoApp):
        todo.board.set_list_name(str(body().get("value", "")))
        return jsonify(todo.board.snapshot())

    @app.route("/api/lists", methods=["POST"])
    @with_client
    @require_session
    def api_create_list(todo: TodoApp):
        name = body().get("name")
        list_id = run(todo, todo.board.create_list, None if name is None else str(name))
        return jsonify({"id": list_id, "board": todo.board.snapshot()})

    @app.route("/api/lists/<list_id>/draft", methods=["PUT"])
    @with_client
    @require_session
    def api_task_draft(todo: TodoApp, list_id):
        data = body()
        try:
            draft = todo.board.set_task_input(list_id, str(data.get("field", "")), data.get("value"))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        return jsonify({"draft": draft.to_dict()})

    @app.route("/api/lists/<list_id>/tasks", methods=["POST"])
    @with_client
    @require_session
    def api_create_task(todo: TodoApp, list_id):
        if todo.board.get_list(list_id) is None:
            return jsonify({"error": "List not found"}), 404
        data = body()
        fields = {k: data[k] for k in DRAFT_FIELDS if k in data}
        task_id = run(todo, todo.board.create_task, list_id, fields)
        return jsonify({"id": task_id, "board": todo.board.snapshot()})

    @app.route("/api/drag", methods=["POST"])
    @with_client
    @require_session
    def api_drag(todo: TodoApp):
        data = body()
        list_id = str(data.get("listId", ""))
        task = todo.board.find_task(list_id, str(data.get("taskId", "")))
        if task is None:
            return jsonify({"error": "Task not found"}), 404
        todo.board.begin_drag(task, list_id)
        return jsonify(todo.board.snapshot())

    @app.route("/api/drop", methods=["POST"])
    @with_client
    @require_session
    def api_drop(todo: TodoApp):
        data = body()
        priority = str(data.get("priority", "")).strip().lower()
        if priority not in {p.value for p in Priority}:
            return jsonify({"error": f"Invalid priority: {priority}"}), 400
        list_id = str(data.get("listId", ""))
        if todo.board.get_list(list_id) is None:
            return jsonify({"error": "List not found"}), 404
        outcome = run(todo, todo.board.complete_drop, list_id, priority)
        return jsonify({"outcome": outcome.value, "board": todo.board.snapshot()})

    return app


# ── Main ─────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="todolanes server")
    parser.add_argument("--config", help="Path to todolanes.yaml (overrides TODOLANES_CONFIG)")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    args = parser.parse_args()

    try:
        cfg = Config.load(args.config)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, str(cfg.log_level).upper(), logging.INFO),
        format="%(asctime)s [todolanes] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    host = args.host or cfg.host
    port = args.port or cfg.port
    store_label = cfg.db_path if cfg.backend == "local" else cfg.firebase_project_id

    print(f"""
╔═══════════════════════════════════════╗
║  todolanes server                     ║
╠═══════════════════════════════════════╣
║  URL:     http://{host}:{port:<17}║
║  Backend: {cfg.backend:<28}║
║  Store:   {str(store_label)[:28]:<28}║
╚═══════════════════════════════════════╝
""")

    create_app(cfg).run(host=host, port=port, debug=False, threaded=True)
