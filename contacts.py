"""
Contact message workflow.

Messages arrive as ``new`` from the public form and are then owned by the
admin surface:

    new -> read -> replied -> archived
    new -> replied, new -> archived, read -> archived

``archived`` is absorbing and nothing ever returns to ``new``. Every write
filters on the status it was computed from, so when two admins race on the
same message exactly one transition lands and the other is reported as an
invalid transition instead of silently overwriting it.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import parse_object_id, require_db, serialize
from drafting import ReplyDrafter
from errors import InvalidPayload, InvalidTransition, NotFound, StorageUnavailable
from schemas import BulkAction, ContactStatus, ContactSubmission, Reply
from sessions import utcnow

logger = logging.getLogger(__name__)

COLLECTION = "contacts"

TRANSITIONS = {
    ContactStatus.NEW: {ContactStatus.READ, ContactStatus.REPLIED, ContactStatus.ARCHIVED},
    ContactStatus.READ: {ContactStatus.REPLIED, ContactStatus.ARCHIVED},
    ContactStatus.REPLIED: {ContactStatus.ARCHIVED},
    ContactStatus.ARCHIVED: set(),
}

# Statuses reachable without a reply body; "replied" only goes through reply()
BULK_STATUSES = {ContactStatus.READ, ContactStatus.ARCHIVED}


def can_transition(current: ContactStatus, target: ContactStatus) -> bool:
    return target in TRANSITIONS[current]


def build_draft_prompt(contact: Dict[str, Any]) -> str:
    return (
        f"Client Name: {contact.get('name')}\n"
        f"Project Type: {contact.get('project_type') or 'Not specified'}\n"
        f"Company: {contact.get('company') or 'Not specified'}\n"
        f"Budget: {contact.get('budget') or 'Not specified'}\n"
        f"Message: {contact.get('message')}\n\n"
        "Please write a polite, professional reply thanking the client and offering to discuss "
        "the project further.\nFocus on providing a comprehensive draft that can be sent directly "
        "or with minor edits."
    )


class ContactWorkflow:
    def __init__(
        self,
        db: Optional[Database],
        drafter: ReplyDrafter,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.drafter = drafter
        self.clock = clock

    @property
    def collection(self):
        return require_db(self.db)[COLLECTION]

    # =========
    # Public
    # =========
    def submit(self, submission: ContactSubmission, ip_address: str, user_agent: Optional[str]) -> str:
        doc = submission.model_dump()
        doc.update(
            status=ContactStatus.NEW.value,
            created_at=self.clock(),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        try:
            result = self.collection.insert_one(doc)
        except PyMongoError as exc:
            logger.error("contact submission failed: %s", exc)
            raise StorageUnavailable() from exc
        logger.info("contact message %s received", result.inserted_id)
        return str(result.inserted_id)

    # =========
    # Admin reads
    # =========
    def list_contacts(self, status: Optional[ContactStatus] = None) -> List[Dict[str, Any]]:
        query = {"status": status.value} if status else {}
        try:
            return [serialize(doc) for doc in self.collection.find(query).sort("created_at", -1)]
        except PyMongoError as exc:
            raise StorageUnavailable() from exc

    def get(self, contact_id: str) -> Dict[str, Any]:
        return serialize(self._load(parse_object_id(contact_id)))

    def delete(self, contact_id: str) -> None:
        oid = parse_object_id(contact_id)
        try:
            result = self.collection.delete_one({"_id": oid})
        except PyMongoError as exc:
            raise StorageUnavailable() from exc
        if result.deleted_count == 0:
            raise NotFound("Contact not found")

    # =========
    # Transitions
    # =========
    def mark_read(self, contact_id: str) -> Dict[str, Any]:
        return self.transition(contact_id, ContactStatus.READ)

    def archive(self, contact_id: str) -> Dict[str, Any]:
        return self.transition(contact_id, ContactStatus.ARCHIVED)

    def transition(self, contact_id: str, target: ContactStatus) -> Dict[str, Any]:
        if target == ContactStatus.REPLIED:
            raise InvalidTransition("A reply message is required to mark a contact as replied")
        oid = parse_object_id(contact_id)
        current = self._status_of(self._load(oid))
        return self._apply(oid, current, target, {"status": target.value})

    def reply(self, contact_id: str, message: str, admin: str) -> Dict[str, Any]:
        oid = parse_object_id(contact_id)
        text = (message or "").strip()
        if not text:
            raise InvalidTransition("Reply message cannot be empty")

        current = self._status_of(self._load(oid))
        reply = Reply(message=text, sentAt=self.clock(), admin=admin)
        return self._apply(
            oid,
            current,
            ContactStatus.REPLIED,
            {"status": ContactStatus.REPLIED.value, "reply": reply.model_dump()},
        )

    def draft_reply(self, contact_id: str) -> str:
        contact = self._load(parse_object_id(contact_id))
        return self.drafter.draft(build_draft_prompt(contact))

    def bulk(self, request: BulkAction) -> Dict[str, int]:
        oids = [ObjectId(i) for i in request.ids if ObjectId.is_valid(i)]
        if not oids:
            raise InvalidPayload("No valid ids provided")

        if request.action == "delete":
            try:
                deleted = self.collection.delete_many({"_id": {"$in": oids}}).deleted_count
            except PyMongoError as exc:
                raise StorageUnavailable() from exc
            return {"affected": deleted, "skipped": len(request.ids) - deleted}

        if request.status not in BULK_STATUSES:
            raise InvalidPayload("Bulk updates may only set 'read' or 'archived'")

        affected = 0
        for oid in oids:
            try:
                current = self._status_of(self._load(oid))
                self._apply(oid, current, request.status, {"status": request.status.value})
            except (NotFound, InvalidTransition):
                continue
            affected += 1
        return {"affected": affected, "skipped": len(request.ids) - affected}

    # =========
    # Internals
    # =========
    def _load(self, oid) -> Dict[str, Any]:
        try:
            doc = self.collection.find_one({"_id": oid})
        except PyMongoError as exc:
            raise StorageUnavailable() from exc
        if doc is None:
            raise NotFound("Contact not found")
        return doc

    @staticmethod
    def _status_of(doc: Dict[str, Any]) -> ContactStatus:
        return ContactStatus(doc.get("status", ContactStatus.NEW.value))

    def _apply(self, oid, current: ContactStatus, target: ContactStatus, fields: Dict[str, Any]) -> Dict[str, Any]:
        if not can_transition(current, target):
            raise InvalidTransition(f"Cannot move a '{current.value}' contact to '{target.value}'")

        try:
            result = self.collection.update_one({"_id": oid, "status": current.value}, {"$set": fields})
        except PyMongoError as exc:
            logger.error("contact transition failed: %s", exc)
            raise StorageUnavailable() from exc

        if result.matched_count == 0:
            # Someone else moved or deleted it between our read and write
            latest = self._load(oid)
            raise InvalidTransition(
                f"Contact changed to '{latest.get('status')}' before this update was applied"
            )
        logger.info("contact %s: %s -> %s", oid, current.value, target.value)
        return serialize(self._load(oid))
