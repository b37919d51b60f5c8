"""User settings repository — daily loss limit and notification address."""

import sqlite3
from datetime import datetime, timezone

from solscalp.errors import PersistenceError
from solscalp.plans.models import UserSettings
from solscalp.repos.db import get_connection


class SettingsRepo:
    """Data access layer for ``user_settings``.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def get_settings(self, user_id: str) -> UserSettings:
        """Return the user's settings, or the defaults when none are stored."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                """
                SELECT daily_loss_limit_sol, daily_loss_limit_enabled, notification_email
                FROM user_settings WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not read settings for {user_id}: {exc}") from exc
        finally:
            conn.close()

        if row is None:
            return UserSettings(user_id=user_id)
        return UserSettings(
            user_id=user_id,
            daily_loss_limit_sol=row["daily_loss_limit_sol"],
            daily_loss_limit_enabled=bool(row["daily_loss_limit_enabled"]),
            notification_email=row["notification_email"],
        )

    def upsert_settings(self, settings: UserSettings) -> None:
        updated_at = datetime.now(timezone.utc).isoformat()
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                INSERT INTO user_settings
                    (user_id, daily_loss_limit_sol, daily_loss_limit_enabled,
                     notification_email, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    daily_loss_limit_sol = excluded.daily_loss_limit_sol,
                    daily_loss_limit_enabled = excluded.daily_loss_limit_enabled,
                    notification_email = excluded.notification_email,
                    updated_at = excluded.updated_at
                """,
                (
                    settings.user_id,
                    settings.daily_loss_limit_sol,
                    int(settings.daily_loss_limit_enabled),
                    settings.notification_email,
                    updated_at,
                ),
            )
            conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not save settings for {settings.user_id}: {exc}") from exc
        finally:
            conn.close()
