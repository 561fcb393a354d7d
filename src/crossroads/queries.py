"""SQL query builders for the Crossroads session store."""


def build_upsert_session_query() -> str:
    """Build query that inserts or replaces a session's state."""
    return """
    INSERT INTO sessions (id, state)
    VALUES (:session_id, :state)
    ON CONFLICT(id) DO UPDATE SET
        state = excluded.state,
        updated_at = CURRENT_TIMESTAMP
    """


def build_insert_record_query() -> str:
    """Build query that mirrors one decision record of a session."""
    return """
    INSERT INTO decision_records (
        session_id, position, decision_id, selected_option_id, timestamp,
        relevance_score, expiration_timestamp, impact_description, tags, payload
    )
    VALUES (
        :session_id, :position, :decision_id, :selected_option_id, :timestamp,
        :relevance_score, :expiration_timestamp, :impact_description, :tags, :payload
    )
    """


def build_records_query(with_tag: bool = False) -> str:
    """Build query for a session's decision records in history order.

    With ``with_tag`` the records are limited to those carrying :tag.
    """
    query = """
    SELECT dr.payload
    FROM decision_records dr
    WHERE dr.session_id = :session_id
    """
    if with_tag:
        query += """
      AND EXISTS (
          SELECT 1 FROM json_each(dr.tags) WHERE json_each.value = :tag
      )
    """
    return query + "    ORDER BY dr.position\n"


def build_session_list_query() -> str:
    """Build query listing sessions, most recently saved first."""
    return """
    SELECT s.id, s.updated_at, COUNT(dr.id) AS record_count
    FROM sessions s
    LEFT JOIN decision_records dr ON dr.session_id = s.id
    GROUP BY s.id
    ORDER BY s.updated_at DESC, s.id
    """
