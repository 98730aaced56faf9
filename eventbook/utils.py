import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List


def generate_event_id() -> str:
    """Generate a unique event ID"""
    return f"event-{str(uuid.uuid4())[:8]}"


def generate_booking_id() -> str:
    """Generate a unique booking ID"""
    return f"booking-{str(uuid.uuid4())}"


def generate_user_id() -> str:
    """Generate a unique user ID"""
    return f"user-{str(uuid.uuid4())[:8]}"


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def get_current_timestamp() -> str:
    """Get current timestamp in ISO format"""
    return datetime.now(timezone.utc).isoformat()


def get_timestamp_after(seconds: float) -> str:
    """ISO timestamp the given number of seconds from now"""
    return (datetime.now(timezone.utc) + timedelta(seconds=seconds)).isoformat()


def seat_sort_key(seat_number: int) -> str:
    """Sort key of a seat claim item; zero padded so seats sort numerically"""
    return f"SEAT#{seat_number:05d}"


def create_claim_transaction_items(table_name: str, event_id: str, seat_number: int,
                                   booking_id: str, user_id: str, created_at: str,
                                   status: str = "confirmed") -> List[Dict[str, Any]]:
    """Create transaction items for claiming one seat.

    Only the seat item and the new booking are written. The event item is
    checked, not updated, so claims on different seats of one event never
    write the same item.

    Item order matters: the caller maps cancellation reasons back by index.
      0. seat claim item, the (event, seat) unique key
      1. event check: active, seat within capacity, claims not paused
      2. booking record
    """
    seat_item = {
        "Put": {
            "TableName": table_name,
            "Item": {
                "pk": {"S": event_id},
                "sk": {"S": seat_sort_key(seat_number)},
                "event_id": {"S": event_id},
                "seat_number": {"N": str(seat_number)},
                "booking_id": {"S": booking_id},
                "user_id": {"S": user_id},
                "booked_at": {"S": created_at},
            },
            "ConditionExpression": "attribute_not_exists(pk)",
        }
    }

    event_check = {
        "ConditionCheck": {
            "TableName": table_name,
            "Key": {
                "pk": {"S": event_id},
                "sk": {"S": "EVENT"},
            },
            "ConditionExpression": (
                "is_active = :true AND #capacity >= :seat_number AND "
                "(attribute_not_exists(claims_paused_until) OR claims_paused_until < :now)"
            ),
            "ExpressionAttributeNames": {"#capacity": "capacity"},
            "ExpressionAttributeValues": {
                ":true": {"BOOL": True},
                ":seat_number": {"N": str(seat_number)},
                ":now": {"S": created_at},
            },
        }
    }

    booking_item = {
        "Put": {
            "TableName": table_name,
            "Item": {
                "pk": {"S": booking_id},
                "sk": {"S": "BOOKING"},
                "booking_id": {"S": booking_id},
                "event_id": {"S": event_id},
                "user_id": {"S": user_id},
                "seat_number": {"N": str(seat_number)},
                "status": {"S": status},
                "created_at": {"S": created_at},
            },
            "ConditionExpression": "attribute_not_exists(pk)",
        }
    }

    return [seat_item, event_check, booking_item]


def create_cancellation_transaction_items(table_name: str, event_id: str, seat_number: int,
                                          booking_id: str, cancelled_at: str) -> List[Dict[str, Any]]:
    """Create transaction items for cancelling a booking and freeing its seat"""
    booking_item = {
        "Update": {
            "TableName": table_name,
            "Key": {
                "pk": {"S": booking_id},
                "sk": {"S": "BOOKING"},
            },
            "UpdateExpression": "SET #status = :cancelled, cancelled_at = :cancelled_at",
            "ConditionExpression": "#status <> :cancelled",
            "ExpressionAttributeNames": {"#status": "status"},
            "ExpressionAttributeValues": {
                ":cancelled": {"S": "cancelled"},
                ":cancelled_at": {"S": cancelled_at},
            },
        }
    }

    # Only free the seat if it is still held by this booking
    seat_item = {
        "Delete": {
            "TableName": table_name,
            "Key": {
                "pk": {"S": event_id},
                "sk": {"S": seat_sort_key(seat_number)},
            },
            "ConditionExpression": "booking_id = :booking_id",
            "ExpressionAttributeValues": {
                ":booking_id": {"S": booking_id},
            },
        }
    }

    return [booking_item, seat_item]


def get_cancellation_codes(transaction_result: Dict[str, Any]) -> List[str]:
    """Extract per-item cancellation codes from a failed transact_write result"""
    reasons = transaction_result.get("cancellation_reasons") or []
    return [reason.get("Code", "None") for reason in reasons]
