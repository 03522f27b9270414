from __future__ import annotations

import aiosqlite

from ...models import PersonaRecord
from .utils import _opt_int, _sqlite_connection


class GatewayPersonasMixin:
    async def upsert_persona(self, persona: PersonaRecord) -> PersonaRecord:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO characters (
                    character_id, tgt, name, title, greeting, description, author_name,
                    avatar_url, definition, image_gen_enabled, interactions, stars, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(character_id) DO UPDATE SET
                    tgt = COALESCE(excluded.tgt, characters.tgt),
                    name = excluded.name,
                    title = excluded.title,
                    greeting = excluded.greeting,
                    description = excluded.description,
                    author_name = excluded.author_name,
                    avatar_url = excluded.avatar_url,
                    definition = COALESCE(excluded.definition, characters.definition),
                    image_gen_enabled = excluded.image_gen_enabled,
                    interactions = excluded.interactions,
                    stars = COALESCE(excluded.stars, characters.stars),
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    persona.id,
                    persona.tgt,
                    persona.name,
                    persona.title,
                    persona.greeting,
                    persona.description,
                    persona.author_name,
                    persona.avatar_url,
                    persona.definition,
                    int(persona.image_gen_enabled),
                    int(persona.interactions),
                    persona.stars,
                ),
            )
            await db.commit()
        stored = await self.get_persona(persona.id)
        return stored if stored is not None else persona

    async def get_persona(self, persona_id: str) -> PersonaRecord | None:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT * FROM characters WHERE character_id = ?", (persona_id,)) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return PersonaRecord(
            id=str(row["character_id"]),
            tgt=row["tgt"],
            name=str(row["name"]),
            title=row["title"],
            greeting=str(row["greeting"] or ""),
            description=row["description"],
            author_name=row["author_name"],
            avatar_url=row["avatar_url"],
            definition=row["definition"],
            image_gen_enabled=bool(row["image_gen_enabled"]),
            interactions=int(row["interactions"] or 0),
            stars=_opt_int(row["stars"]),
        )
