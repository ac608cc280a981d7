"""
Card persistence.
This module is where card-related SQL lives.

Schema comes from the dbmate migration in `db/migrations/`.
"""

from __future__ import annotations

from typing import Any

import asyncpg

from core import db

from . import errors

EVENT_COLUMNS = (
    "event_name",
    "event_date",
    "raw_event_date",
    "event_time",
    "event_address",
    "event_address_map_link",
    "add_engagement_details",
    "add_sangeet_details",
    "add_haldi_details",
    "add_family_details",
    "is_engagement_address_same_as_wedding",
    "is_sangeet_address_same_as_wedding",
    "is_haldi_address_same_as_wedding",
    "priority_between_bride_and_groom",
    "priority_between_family",
)

# Table names are never taken from request data; these maps are the allowlist.
_SUB_EVENT_TABLES = {"engagement": "engagements", "sangeet": "sangeets", "haldi": "haldis"}
_PROFILE_TABLES = {"bride": "brides", "groom": "grooms"}
_EVENT_FLAG_COLUMNS = {
    "engagement": "add_engagement_details",
    "sangeet": "add_sangeet_details",
    "haldi": "add_haldi_details",
    "family": "add_family_details",
}

_CARD_FIELDS = "id, user_id, card_link, card_status, payment_status, selected_template, created_at, updated_at"


async def card_link_exists(card_link: str, *, user_id: str) -> bool:
    try:
        row = await db.fetch_one(
            """
            SELECT 1 AS ok
            FROM cards
            WHERE card_link = $1
              AND user_id = $2
            LIMIT 1
            """,
            card_link,
            user_id,
        )
    except (asyncpg.PostgresError, OSError) as exc:
        raise errors.PersistenceFailure(f"Failed to check card link: {exc}") from exc
    return row is not None


async def create_card_and_event(
    *,
    user_id: str,
    card_link: str,
    card_status: str,
    payment_status: str,
    selected_template: str,
    event_fields: dict[str, Any],
) -> tuple[int, int]:
    """
    Insert the root card + its event in a single transaction.

    Returns (card_id, event_id). A unique-index hit on (user_id, card_link)
    surfaces as DuplicateCardLink.
    """
    placeholders = ", ".join(f"${i}" for i in range(3, len(EVENT_COLUMNS) + 3))
    event_sql = f"""
        INSERT INTO events (card_id, user_id, {", ".join(EVENT_COLUMNS)})
        VALUES ($1, $2, {placeholders})
        RETURNING id
    """

    try:
        async with db.transaction() as conn:
            card_row = await conn.fetchrow(
                """
                INSERT INTO cards (user_id, card_link, card_status, payment_status, selected_template)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING id
                """,
                user_id,
                card_link,
                card_status,
                payment_status,
                selected_template,
            )
            if card_row is None:
                raise errors.PersistenceFailure("Failed to insert card.")
            card_id = int(card_row["id"])

            event_row = await conn.fetchrow(
                event_sql,
                card_id,
                user_id,
                *(event_fields[column] for column in EVENT_COLUMNS),
            )
            if event_row is None:
                raise errors.PersistenceFailure("Failed to insert event.")
            return card_id, int(event_row["id"])
    except asyncpg.UniqueViolationError as exc:
        raise errors.DuplicateCardLink(card_link) from exc
    except (asyncpg.PostgresError, OSError) as exc:
        raise errors.PersistenceFailure(f"Failed to insert card: {exc}") from exc


async def create_sub_event(
    kind: str,
    *,
    card_id: int,
    event_id: int,
    user_id: str,
    event_date: str,
    raw_event_date: str,
    event_time: str,
    address: str,
) -> int:
    table = _SUB_EVENT_TABLES[kind]
    row = await db.fetch_one(
        f"""
        INSERT INTO {table} (card_id, event_id, user_id, event_date, raw_event_date, event_time, address)
        VALUES ($1, $2, $3, $4, $5, $6, $7)
        RETURNING id
        """,
        card_id,
        event_id,
        user_id,
        event_date,
        raw_event_date,
        event_time,
        address,
    )
    if row is None:
        raise errors.PersistenceFailure(f"Failed to insert {kind}.")
    return int(row["id"])


async def create_party_profile(
    role: str,
    *,
    card_id: int,
    event_id: int,
    user_id: str,
    first_name: str,
    last_name: str,
    instagram_link: str,
    facebook_link: str,
    youtube_link: str,
    image_url: str,
) -> int:
    table = _PROFILE_TABLES[role]
    row = await db.fetch_one(
        f"""
        INSERT INTO {table} (
          card_id, event_id, user_id, first_name, last_name,
          instagram_link, facebook_link, youtube_link, image_url
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
        RETURNING id
        """,
        card_id,
        event_id,
        user_id,
        first_name,
        last_name,
        instagram_link,
        facebook_link,
        youtube_link,
        image_url,
    )
    if row is None:
        raise errors.PersistenceFailure(f"Failed to insert {role}.")
    return int(row["id"])


async def create_gallery_items(
    *,
    card_id: int,
    event_id: int,
    user_id: str,
    items: list[tuple[int, str, str]],
) -> list[int]:
    """
    Bulk insert gallery rows.

    `items` is [(ordinal, field_label, image_url), ...]; rows are inserted in
    ordinal order and ids are returned in the same order.
    """
    if not items:
        return []

    rows = await db.fetch_all(
        """
        INSERT INTO gallery_items (card_id, event_id, user_id, ordinal, field_label, image_url)
        SELECT $1, $2, $3, t.ordinal, t.field_label, t.image_url
        FROM unnest($4::int[], $5::text[], $6::text[]) AS t(ordinal, field_label, image_url)
        ORDER BY t.ordinal
        RETURNING id
        """,
        card_id,
        event_id,
        user_id,
        [ordinal for (ordinal, _, _) in items],
        [label for (_, label, _) in items],
        [url for (_, _, url) in items],
    )
    return [int(r["id"]) for r in rows]


async def create_audio_asset(*, card_id: int, event_id: int, user_id: str, audio_url: str) -> int:
    row = await db.fetch_one(
        """
        INSERT INTO audio_assets (card_id, event_id, user_id, audio_url)
        VALUES ($1, $2, $3, $4)
        RETURNING id
        """,
        card_id,
        event_id,
        user_id,
        audio_url,
    )
    if row is None:
        raise errors.PersistenceFailure("Failed to insert audio asset.")
    return int(row["id"])


async def create_family_members(
    *,
    card_id: int,
    event_id: int,
    user_id: str,
    members: list[tuple[int, str, str, str]],
) -> list[int]:
    """
    Bulk insert family members.

    `members` is [(position, member_name, member_relation, image_url), ...].
    """
    if not members:
        return []

    rows = await db.fetch_all(
        """
        INSERT INTO family_members (card_id, event_id, user_id, position, member_name, member_relation, image_url)
        SELECT $1, $2, $3, t.position, t.member_name, t.member_relation, t.image_url
        FROM unnest($4::int[], $5::text[], $6::text[], $7::text[])
          AS t(position, member_name, member_relation, image_url)
        ORDER BY t.position
        RETURNING id
        """,
        card_id,
        event_id,
        user_id,
        [position for (position, _, _, _) in members],
        [name for (_, name, _, _) in members],
        [relation for (_, _, relation, _) in members],
        [url for (_, _, _, url) in members],
    )
    return [int(r["id"]) for r in rows]


async def clear_event_flags(event_id: int, *, branches: list[str]) -> None:
    """
    Set the inclusion flag of each named branch back to false.
    """
    columns = [_EVENT_FLAG_COLUMNS[branch] for branch in branches if branch in _EVENT_FLAG_COLUMNS]
    if not columns:
        return
    assignments = ", ".join(f"{column} = false" for column in columns)
    await db.execute(
        f"""
        UPDATE events
        SET {assignments}
        WHERE id = $1
        """,
        event_id,
    )


async def list_cards(*, user_id: str, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
    return await db.fetch_all(
        f"""
        SELECT {_CARD_FIELDS}
        FROM cards
        WHERE user_id = $1
        ORDER BY created_at DESC, id DESC
        LIMIT $2
        OFFSET $3
        """,
        user_id,
        limit,
        offset,
    )


async def update_card(card_id: int, *, user_id: str, changes: dict[str, str]) -> dict[str, Any] | None:
    """
    Apply the given card field changes. Returns the updated row, or None when
    the card does not exist for this user.
    """
    return await db.fetch_one(
        f"""
        UPDATE cards
        SET card_status = COALESCE($3, card_status),
            payment_status = COALESCE($4, payment_status),
            selected_template = COALESCE($5, selected_template),
            updated_at = now()
        WHERE id = $1
          AND user_id = $2
        RETURNING {_CARD_FIELDS}
        """,
        card_id,
        user_id,
        changes.get("card_status"),
        changes.get("payment_status"),
        changes.get("selected_template"),
    )


async def delete_card(card_id: int, *, user_id: str) -> dict[str, Any] | None:
    """
    Delete a card (child rows cascade). Returns the deleted id, or None when
    not found.
    """
    return await db.fetch_one(
        """
        DELETE FROM cards
        WHERE id = $1
          AND user_id = $2
        RETURNING id
        """,
        card_id,
        user_id,
    )
