from __future__ import annotations
import logging
from typing import Dict, List, Optional

from errors import ConflictError, NotFoundError, ValidationError
from identity import Identity, require
from workout_service import present

logger = logging.getLogger(__name__)

PENDING = "pending"
ACCEPTED = "accepted"
REJECTED = "rejected"

_PLACEHOLDER_PROFILE = {
    "id": "",
    "email": "",
    "name": "",
    "is_public_profile": False,
    "allow_friend_requests": False,
    "created_at": "",
}


class FriendService:
    """Profiles, friend requests, symmetric friend edges and the shared feed.

    Accepting a request writes three records without a transaction: the
    request status first, then one edge per direction. Edge writes are
    idempotent and ``repair_edges`` re-creates whatever a partial accept
    left out.
    """

    def __init__(self, store, feed_limit: int = 20) -> None:
        self.profiles = store.profiles
        self.friend_edges = store.friends
        self.requests = store.friend_requests
        self.workouts = store.workouts
        self.feed_limit = feed_limit

    # Profiles
    def get_profile(self, identity: Optional[Identity]) -> dict:
        identity = require(identity)
        profile = self.profiles.fetch(identity.uid)
        if profile is not None:
            return profile
        profile = {
            "id": identity.uid,
            "email": identity.email,
            "name": identity.name,
            "photo_url": None,
            "is_public_profile": False,
            "allow_friend_requests": True,
        }
        self.profiles.add(profile)
        logger.info("Created profile for %s", identity.uid)
        return self.profiles.fetch(identity.uid)

    def update_profile(self, identity: Optional[Identity], fields: Dict) -> dict:
        identity = require(identity)
        self.get_profile(identity)
        self.profiles.update(identity.uid, fields)
        return self.profiles.fetch(identity.uid)

    # Requests
    def send_request(self, identity: Optional[Identity], email: str) -> dict:
        identity = require(identity)
        email = (email or "").strip()
        if not email:
            raise ValidationError("email is required")
        target = self.profiles.find_by_email(email)
        if target is None:
            raise NotFoundError("User not found")
        if target["id"] == identity.uid:
            raise ValidationError("cannot send a friend request to yourself")
        if not target.get("allow_friend_requests", True):
            raise ValidationError("user does not accept friend requests")
        if self.requests.find(identity.uid, target["id"]):
            raise ConflictError("Friend request already sent")
        request_id = self.requests.add(identity.uid, target["id"], identity.email, identity.name)
        logger.info("Friend request %s from %s to %s", request_id, identity.uid, target["id"])
        return {"id": request_id}

    def pending_requests(self, identity: Optional[Identity]) -> List[dict]:
        identity = require(identity)
        return self.requests.fetch_pending_for(identity.uid)

    def _addressed_to(self, identity: Identity, request_id) -> dict:
        request = self.requests.fetch(request_id)
        if request is None or request["to_user_id"] != identity.uid:
            raise NotFoundError("Friend request not found")
        return request

    def accept_request(self, identity: Optional[Identity], request_id) -> dict:
        identity = require(identity)
        request = self._addressed_to(identity, request_id)
        if request["status"] != PENDING:
            raise ConflictError(f"Friend request already {request['status']}")
        self.requests.set_status(request_id, ACCEPTED)
        self.friend_edges.ensure(
            identity.uid,
            request["from_user_id"],
            request.get("from_user_email"),
            request.get("from_user_name"),
        )
        self.friend_edges.ensure(
            request["from_user_id"], identity.uid, identity.email, identity.name
        )
        logger.info("Friend request %s accepted", request_id)
        return {"id": request_id}

    def reject_request(self, identity: Optional[Identity], request_id) -> dict:
        identity = require(identity)
        request = self._addressed_to(identity, request_id)
        if request["status"] != PENDING:
            raise ConflictError(f"Friend request already {request['status']}")
        self.requests.set_status(request_id, REJECTED)
        logger.info("Friend request %s rejected", request_id)
        return {"id": request_id}

    # Edges
    def friends(self, identity: Optional[Identity]) -> List[dict]:
        identity = require(identity)
        return self.friend_edges.fetch_for_user(identity.uid)

    def remove_friend(self, identity: Optional[Identity], friend_id: str) -> int:
        """Delete the friendship in both directions; returns edges removed."""
        identity = require(identity)
        edges = self.friend_edges.find(identity.uid, friend_id) + self.friend_edges.find(
            friend_id, identity.uid
        )
        for edge in edges:
            self.friend_edges.remove(edge["id"])
        logger.info("Removed %d friend edges between %s and %s", len(edges), identity.uid, friend_id)
        return len(edges)

    def repair_edges(self, identity: Optional[Identity]) -> int:
        """Ensure both edges exist for every accepted request involving the caller."""
        identity = require(identity)
        created = 0
        for request in self.requests.fetch_accepted_involving(identity.uid):
            sender = request["from_user_id"]
            receiver = request["to_user_id"]
            receiver_profile = self.profiles.fetch(receiver) or {}
            if self.friend_edges.ensure(
                receiver,
                sender,
                request.get("from_user_email"),
                request.get("from_user_name"),
            ):
                created += 1
            if self.friend_edges.ensure(
                sender,
                receiver,
                receiver_profile.get("email"),
                receiver_profile.get("name") or receiver_profile.get("email"),
            ):
                created += 1
        if created:
            logger.info("Repaired %d friend edges for %s", created, identity.uid)
        return created

    # Feed
    def friends_feed(self, identity: Optional[Identity], limit: int | None = None) -> List[dict]:
        """Friends' public workouts, newest first, joined with owner profiles."""
        identity = require(identity)
        if limit is None:
            limit = self.feed_limit
        if limit < 1:
            raise ValidationError("limit must be positive")
        friend_ids = sorted({edge["friend_id"] for edge in self.friends(identity)})
        if not friend_ids:
            return []
        workouts = self.workouts.fetch_public_for_users(friend_ids, limit)
        owners: Dict[str, dict] = {}
        for owner_id in {w["user_id"] for w in workouts if w.get("user_id")}:
            profile = self.profiles.fetch(owner_id)
            if profile is not None:
                owners[owner_id] = profile
        return [
            {
                "id": workout["id"],
                "workout": present(workout),
                "user": owners.get(workout.get("user_id"), dict(_PLACEHOLDER_PROFILE)),
                "shared_at": workout.get("created_at"),
            }
            for workout in workouts
        ]
