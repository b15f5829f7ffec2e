from typing import Dict, List

from ..application import db
from ..models.orm.aliases import GeostoreAlias as ORMGeostoreAlias


class AliasTable:
    """Read only redirects from legacy geostore ids to content hashes."""

    def __init__(self, database=db):
        self.db = database

    async def _all(self, sql):
        return await self.db.all(sql)

    async def resolve(self, geostore_id: str) -> str:
        """Return the hash an id points to, or the id itself."""
        resolved = await self.resolve_many([geostore_id])
        return resolved[0]

    async def resolve_many(self, geostore_ids: List[str]) -> List[str]:
        if not geostore_ids:
            return []
        sql = ORMGeostoreAlias.query.where(ORMGeostoreAlias.old_id.in_(geostore_ids))
        aliases: Dict[str, str] = {
            alias.old_id: alias.hash for alias in await self._all(sql)
        }
        return [aliases.get(geostore_id, geostore_id) for geostore_id in geostore_ids]
