import logging
import requests
from typing import Optional

logger = logging.getLogger(__name__)


class TrainingClient:
    """Simple REST client for the training log API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        user_id: Optional[str] = None,
        email: Optional[str] = None,
        name: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {}
        if user_id:
            self.headers["X-User-Id"] = user_id
        if email:
            self.headers["X-User-Email"] = email
        if name:
            self.headers["X-User-Name"] = name

    def _call(self, method: str, path: str, *, timeout: float | None = None, **kwargs):
        resp = requests.request(
            method,
            f"{self.base_url}{path}",
            headers=self.headers,
            timeout=timeout or self.timeout,
            **kwargs,
        )
        resp.raise_for_status()
        return resp.json()

    def health(self) -> dict:
        return self._call("GET", "/health")

    def create_workout(self, date: str, muscle_group: str, exercise_name: str, **fields):
        body = {"date": date, "muscle_group": muscle_group, "exercise_name": exercise_name, **fields}
        return self._call("POST", "/api/workouts", json=body)["id"]

    def update_workout(self, workout_id, **fields) -> None:
        self._call("PUT", f"/api/workouts/{workout_id}", json=fields)

    def delete_workout(self, workout_id) -> None:
        self._call("DELETE", f"/api/workouts/{workout_id}")

    def list_workouts(self, date: Optional[str] = None):
        params = {"date": date} if date else None
        return self._call("GET", "/api/workouts", params=params)

    def workouts_in_range(self, start_date: str, end_date: str):
        return self._call(
            "GET",
            "/api/workouts/range",
            params={"start_date": start_date, "end_date": end_date},
        )

    def grouped_workouts(self, date: str) -> dict:
        return self._call("GET", "/api/workouts/grouped", params={"date": date})

    def muscle_groups(self):
        return self._call("GET", "/api/muscle-groups")

    def exercises(self, muscle_group: Optional[str] = None):
        params = {"muscle_group": muscle_group} if muscle_group else None
        return self._call("GET", "/api/exercises", params=params)

    def suggestions(self, muscle_group: str):
        return self._call("GET", f"/api/exercises/{muscle_group}")

    def create_exercise(self, muscle_group: str, name: str) -> dict:
        return self._call("POST", "/api/exercises", json={"muscle_group": muscle_group, "name": name})

    def save_order(self, exercise_ids: list):
        return self._call("PUT", "/api/exercises/order", json={"ids": exercise_ids})

    def statistics(self, start_date: Optional[str] = None, end_date: Optional[str] = None):
        params = {}
        if start_date:
            params["start_date"] = start_date
        if end_date:
            params["end_date"] = end_date
        return self._call("GET", "/api/statistics", params=params or None)

    def profile(self) -> dict:
        return self._call("GET", "/api/profile")

    def update_profile(self, **fields) -> dict:
        return self._call("PUT", "/api/profile", json=fields)

    def friends(self):
        return self._call("GET", "/api/friends")

    def send_friend_request(self, email: str) -> dict:
        return self._call("POST", "/api/friend-requests", json={"email": email})

    def accept_friend_request(self, request_id) -> dict:
        return self._call("POST", f"/api/friend-requests/{request_id}/accept")

    def reject_friend_request(self, request_id) -> dict:
        return self._call("POST", f"/api/friend-requests/{request_id}/reject")

    def feed(self, limit: Optional[int] = None):
        params = {"limit": limit} if limit else None
        return self._call("GET", "/api/feed", params=params)

    def bootstrap(self, deadline: float = 5.0) -> dict:
        """Initial load that gives up after ``deadline`` seconds.

        A timeout or unreachable server yields an empty, incomplete result
        instead of an exception so callers never wait indefinitely.
        """
        try:
            return self._call("GET", "/api/bootstrap", timeout=deadline)
        except (requests.Timeout, requests.ConnectionError) as e:
            logger.warning("Bootstrap request failed: %s", e)
            return {"muscle_groups": [], "exercises": [], "complete": False}
