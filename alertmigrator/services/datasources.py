# alertmigrator/services/datasources.py
from __future__ import annotations

from typing import Dict, Protocol, Tuple

from alertmigrator.schemas.legacy import DataSourceRef
from alertmigrator.services.errors import NotFoundError


class DatasourceSource(Protocol):
    def get_datasource(self, org_id: int, datasource_id: int) -> DataSourceRef:
        ...


class DatasourceCache:
    """Resolves legacy numeric datasource ids to uid/type, once per id."""

    def __init__(self, source: DatasourceSource) -> None:
        self._source = source
        self._cache: Dict[Tuple[int, int], DataSourceRef] = {}

    def get(self, org_id: int, datasource_id: int) -> DataSourceRef:
        key = (int(org_id), int(datasource_id))
        hit = self._cache.get(key)
        if hit is not None:
            return hit
        ds = self._source.get_datasource(org_id, datasource_id)
        if ds is None:
            raise NotFoundError(f"datasource {datasource_id} not found in org {org_id}")
        self._cache[key] = ds
        return ds
