"""
Remote board store access.

BoardGateway is the collaborator the engine persists through. Calls are
blocking; the engine moves them off the event loop. Writes raise
PersistenceError, reads raise LoadError, including when a response body
cannot be decoded. Position and rename writes return nothing: the engine
never reads their echo.

HttpBoardGateway talks to the board REST API:

    GET    /boards/{id}               → board
    POST   /boards                    → create board
    PUT    /boards/{id}               → update board name/description
    DELETE /boards/{id}
    GET    /boards/{id}/columns       → columns with nested tasks
    GET    /boards/{id}/members       → members
    POST   /boards/{id}/members       → add member by email
    DELETE /boards/{id}/members/{uid}
    POST   /columns                   → create column
    PUT    /columns/{id}              → rename column
    PUT    /columns/{id}/position     → move column
    DELETE /columns/{id}
    GET    /tasks/{id}                → task
    POST   /tasks                     → create task
    PUT    /tasks/{id}                → partial task update
    DELETE /tasks/{id}
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

import requests

from .errors import LoadError, PersistenceError
from .schema import Board, Column, Member, Task

logger = logging.getLogger(__name__)


class BoardGateway(Protocol):
    """Operations the reconciliation engine needs from the remote store."""

    def fetch_board(self, board_id: int) -> Board: ...

    def fetch_columns(self, board_id: int) -> List[Column]: ...

    def fetch_board_members(self, board_id: int) -> List[Member]: ...

    def fetch_task(self, task_id: int) -> Task: ...

    def update_column_position(self, column_id: int, position: int) -> None: ...

    def update_column(self, column_id: int, title: str) -> None: ...

    def create_column(self, board_id: int, title: str, position: int) -> Column: ...

    def delete_column(self, column_id: int) -> None: ...

    def update_task(self, task_id: int, changes: Dict[str, Any]) -> None: ...

    def create_task(self, payload: Dict[str, Any]) -> Task: ...

    def delete_task(self, task_id: int) -> None: ...


class HttpBoardGateway:
    """BoardGateway over the board REST API (JSON, bearer token)."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    # ── transport ────────────────────────────────────────────────────────────

    def _request(self, method: str, path: str, json: Optional[dict] = None) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url} {json or ''}")
        response = self.session.request(method, url, json=json, timeout=self.timeout)
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _read(self, path: str, decode: Callable[[Any], Any]) -> Any:
        """GET ``path`` and decode the body; any failure is a LoadError."""
        try:
            return decode(self._request("GET", path))
        except requests.HTTPError as e:
            raise LoadError(f"GET {path} failed: {e}", status=e.response.status_code) from e
        except (requests.RequestException, AttributeError, KeyError, TypeError, ValueError) as e:
            raise LoadError(f"GET {path} failed: {e!r}") from e

    def _write(self, method: str, path: str, json: Optional[dict] = None,
               item_id: Optional[int] = None,
               decode: Optional[Callable[[Any], Any]] = None) -> Any:
        """
        Send a write. Without ``decode`` the response body is ignored and
        None is returned; with it, an undecodable body is a PersistenceError.
        """
        try:
            data = self._request(method, path, json=json)
            return decode(data) if decode is not None else None
        except requests.HTTPError as e:
            raise PersistenceError(
                f"{method} {path} failed: {e}", item_id=item_id, status=e.response.status_code
            ) from e
        except (requests.RequestException, AttributeError, KeyError, TypeError, ValueError) as e:
            raise PersistenceError(f"{method} {path} failed: {e!r}", item_id=item_id) from e

    # ── boards ───────────────────────────────────────────────────────────────

    def fetch_board(self, board_id: int) -> Board:
        return self._read(f"/boards/{board_id}", Board.from_dict)

    def create_board(self, name: str, owner_id: int, description: str = "") -> Board:
        payload = {"name": name, "description": description, "user_id": owner_id}
        return self._write("POST", "/boards", payload, decode=Board.from_dict)

    def update_board(self, board_id: int, name: str, description: str = "") -> Board:
        return self._write("PUT", f"/boards/{board_id}",
                           {"name": name, "description": description},
                           item_id=board_id, decode=Board.from_dict)

    def delete_board(self, board_id: int) -> None:
        self._write("DELETE", f"/boards/{board_id}", item_id=board_id)

    def fetch_columns(self, board_id: int) -> List[Column]:
        """Columns ordered by position, each with its tasks ordered by position."""
        def decode(data):
            columns = [Column.from_dict({"board_id": board_id, **raw}) for raw in data or []]
            columns.sort(key=lambda c: c.position)
            return columns

        return self._read(f"/boards/{board_id}/columns", decode)

    # ── members ──────────────────────────────────────────────────────────────

    def fetch_board_members(self, board_id: int) -> List[Member]:
        return self._read(
            f"/boards/{board_id}/members",
            lambda data: [Member.from_dict({"board_id": board_id, **raw}) for raw in data or []],
        )

    def add_board_member(self, board_id: int, email: str) -> Member:
        """Invite a user by email; the API answers with the new membership."""
        return self._write(
            "POST", f"/boards/{board_id}/members", {"email": email}, item_id=board_id,
            decode=lambda data: Member.from_dict({"board_id": board_id, "email": email, **data}),
        )

    def remove_board_member(self, board_id: int, user_id: int) -> None:
        self._write("DELETE", f"/boards/{board_id}/members/{user_id}", item_id=user_id)

    # ── columns ──────────────────────────────────────────────────────────────

    def update_column_position(self, column_id: int, position: int) -> None:
        self._write("PUT", f"/columns/{column_id}/position",
                    {"position": position}, item_id=column_id)

    def update_column(self, column_id: int, title: str) -> None:
        self._write("PUT", f"/columns/{column_id}", {"title": title}, item_id=column_id)

    def create_column(self, board_id: int, title: str, position: int) -> Column:
        return self._write(
            "POST", "/columns", {"title": title, "board_id": board_id, "position": position},
            decode=lambda data: Column.from_dict({"board_id": board_id, **data}),
        )

    def delete_column(self, column_id: int) -> None:
        self._write("DELETE", f"/columns/{column_id}", item_id=column_id)

    # ── tasks ────────────────────────────────────────────────────────────────

    def fetch_task(self, task_id: int) -> Task:
        return self._read(f"/tasks/{task_id}", Task.from_dict)

    def update_task(self, task_id: int, changes: Dict[str, Any]) -> None:
        """Partial update: only the keys present in ``changes`` are sent."""
        self._write("PUT", f"/tasks/{task_id}", changes, item_id=task_id)

    def create_task(self, payload: Dict[str, Any]) -> Task:
        return self._write(
            "POST", "/tasks", payload,
            decode=lambda data: Task.from_dict({"column_id": payload.get("column_id"), **data}),
        )

    def delete_task(self, task_id: int) -> None:
        self._write("DELETE", f"/tasks/{task_id}", item_id=task_id)
