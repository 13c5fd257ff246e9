import httpx
import logging
from dataclasses import replace
from typing import Iterable, List, Tuple
from stora.configs import STORA_HTTP_HEADERS
from stora.core.sync import CachedEntry, MergePlan, merge_snapshot

logger = logging.getLogger(__name__)

ITEM_FIELDS = (
    'name', 'code', 'quantity', 'category', 'condition',
    'location', 'acquired_on', 'description',
)


class StoraClient:
    """Offline-first client: pushes pending cache entries, then pulls the
    server snapshot and plans the cache merge.
    """

    API_PATH = "/v1/api"
    HTTP_HEADERS = STORA_HTTP_HEADERS

    def __init__(self, base_url: str, token: str, timeout: int = 30, transport=None):
        self.http = httpx.Client(
            base_url=f"{base_url.rstrip('/')}{self.API_PATH}",
            headers={**self.HTTP_HEADERS, "Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    def close(self):
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    @staticmethod
    def _payload(entry: CachedEntry) -> dict:
        return {k: entry.data[k] for k in ITEM_FIELDS if k in entry.data}

    def _push_one(self, entry: CachedEntry) -> CachedEntry:
        if entry.deleted:
            if entry.server_id is not None:
                response = self.http.delete(f"/items/{entry.server_id}")
                # Already gone on the server counts as done.
                if response.status_code != 404:
                    response.raise_for_status()
            return replace(entry, needs_sync=False)

        if entry.server_id is None:
            response = self.http.post("/items", json=self._payload(entry))
        else:
            response = self.http.put(f"/items/{entry.server_id}", json=self._payload(entry))
        response.raise_for_status()
        record = response.json()
        return replace(entry, server_id=record["id"], data=record, needs_sync=False)

    def push(self, entries: Iterable[CachedEntry]) -> Tuple[List[CachedEntry], List[CachedEntry]]:
        """Send every pending entry; returns (pushed, failed). Failed
        entries stay pending for the next round.
        """
        pushed, failed = [], []
        for entry in entries:
            if not entry.needs_sync:
                continue
            try:
                pushed.append(self._push_one(entry))
            except httpx.HTTPError as e:
                logger.error(f"Push failed for {entry.local_id} (server id {entry.server_id}): {e}")
                failed.append(entry)
        logger.info(f"Pushed {len(pushed)} entr(ies), {len(failed)} failed")
        return pushed, failed

    def pull(self) -> dict:
        response = self.http.get("/sync/snapshot")
        response.raise_for_status()
        return response.json()

    def sync(self, cache: Iterable[CachedEntry]) -> Tuple[List[CachedEntry], MergePlan]:
        """Push, then pull and merge. Returns the new cache and the plan
        that produced it.
        """
        cache = list(cache)
        pushed, _ = self.push(cache)
        by_local_id = {entry.local_id: entry for entry in cache}
        for entry in pushed:
            if entry.deleted:
                by_local_id.pop(entry.local_id, None)
            else:
                by_local_id[entry.local_id] = entry
        cache = list(by_local_id.values())

        snapshot = self.pull()
        plan = merge_snapshot(cache, snapshot.get("items", []))
        return plan.apply(cache), plan
