"""
Elasticsearch-backed vehicle directory and telemetry store.

Indices:
- vehicles: one document per vehicle, document id = vehicle id
- gps_logs: one document per GPS record, document id = record id
- gps_log_sequence: a single counter document whose version issues
  monotonically increasing record ids

The synchronous Elasticsearch client is driven from a thread pool so the
event loop is never blocked. Every client call runs inside an
"elasticsearch.<operation>" tracing span. Every client failure is logged
and re-raised as a STORE_UNAVAILABLE AppException, which the API reports
as a generic 500.

GPS timestamps are mapped as date_nanos so the microsecond precision kept
by ingestion survives the range bounds and the retention cut. date_nanos
only covers 1970-01-01 to 2262-04-11; timestamps outside it are rejected
as validation errors on insert.
"""

import asyncio
import contextlib
import functools
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from elasticsearch import Elasticsearch, NotFoundError

from config.settings import Settings
from errors.exceptions import store_unavailable, validation_error
from observability.service import ObservabilityService, get_observability_service
from storage.base import (
    NewTelemetryRecord,
    RecordSlice,
    TelemetryRecord,
    TelemetryStore,
    Vehicle,
    VehicleDirectory,
)

logger = logging.getLogger(__name__)

SEQUENCE_DOC_ID = "gps_logs"

DATE_NANOS_MIN = datetime(1970, 1, 1)
DATE_NANOS_MAX = datetime(2262, 4, 11, 23, 47, 16, 854775)


def create_elasticsearch_client(settings: Settings) -> Elasticsearch:
    """Create the Elasticsearch client from settings."""
    if not settings.elastic_endpoint:
        raise ValueError("elastic_endpoint must be set to use the Elasticsearch store")

    return Elasticsearch(
        settings.elastic_endpoint,
        api_key=settings.elastic_api_key,
        verify_certs=settings.elastic_verify_certs,
        request_timeout=30
    )


def get_vehicles_mapping() -> Dict[str, Any]:
    """Get mapping for the vehicles index"""
    return {
        "properties": {
            "id": {"type": "long"},
            "plate_number": {"type": "keyword"},
            "name": {"type": "text"},
            "type": {"type": "keyword"},
        }
    }


def get_gps_logs_mapping() -> Dict[str, Any]:
    """Get mapping for the gps_logs index"""
    return {
        "properties": {
            "id": {"type": "long"},
            "vehicle_reference": {"type": "long"},
            "latitude": {"type": "double"},
            "longitude": {"type": "double"},
            "speed": {"type": "double"},
            "timestamp": {"type": "date_nanos"},
            "speed_violation": {"type": "boolean"},
        }
    }


def setup_indices(client: Elasticsearch, settings: Settings) -> None:
    """Create indices with proper mappings if they don't exist"""
    indices = {
        settings.vehicles_index: get_vehicles_mapping(),
        settings.gps_logs_index: get_gps_logs_mapping(),
        settings.sequence_index: {"enabled": False},
    }

    for index_name, mappings in indices.items():
        if client.indices.exists(index=index_name):
            logger.info(f"Index already exists: {index_name}")
            continue
        client.indices.create(index=index_name, mappings=mappings)
        logger.info(f"Created index: {index_name}")


def _record_to_document(record: TelemetryRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "vehicle_reference": record.vehicle_reference,
        "latitude": record.latitude,
        "longitude": record.longitude,
        "speed": record.speed,
        "timestamp": record.timestamp.isoformat(),
        "speed_violation": record.speed_violation,
    }


def _document_to_record(source: Dict[str, Any]) -> TelemetryRecord:
    return TelemetryRecord(
        id=int(source["id"]),
        vehicle_reference=int(source["vehicle_reference"]),
        latitude=float(source["latitude"]),
        longitude=float(source["longitude"]),
        speed=float(source["speed"]),
        timestamp=datetime.fromisoformat(source["timestamp"]),
        speed_violation=bool(source["speed_violation"]),
    )


class _ElasticsearchBacked:
    """Shared plumbing: thread-pool execution, tracing and error translation."""

    def __init__(self, client: Elasticsearch, observability: Optional[ObservabilityService] = None):
        self.client = client
        self.observability = observability or get_observability_service()

    def _span(self, operation: str):
        if self.observability is None:
            return contextlib.nullcontext()
        return self.observability.create_external_service_span("elasticsearch", operation)

    async def _run(
        self,
        operation: str,
        func: Callable[..., Any],
        *args: Any,
        missing_ok: bool = False,
        **kwargs: Any
    ) -> Any:
        """
        Run a client call in the thread pool.

        With missing_ok, a NotFoundError is passed through to the caller
        instead of being reported as a store failure.
        """
        loop = asyncio.get_running_loop()
        try:
            with self._span(operation):
                return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
        except NotFoundError:
            if missing_ok:
                raise
            logger.error(f"Elasticsearch {operation} hit a missing index or document")
            raise store_unavailable(operation) from None
        except Exception as e:
            self._handle_elasticsearch_error(operation, e)

    def _handle_elasticsearch_error(self, operation: str, error: Exception) -> None:
        """
        Log an Elasticsearch failure and raise it as STORE_UNAVAILABLE.

        Raises:
            AppException: With STORE_UNAVAILABLE error code
        """
        logger.error(
            f"Elasticsearch {operation} failed: {error}",
            extra={"extra_data": {"operation": operation, "error": str(error)}}
        )
        raise store_unavailable(operation, error) from error


class ElasticsearchVehicleDirectory(_ElasticsearchBacked, VehicleDirectory):
    """Vehicle lookups against the vehicles index."""

    def __init__(
        self,
        client: Elasticsearch,
        index: str = "vehicles",
        observability: Optional[ObservabilityService] = None,
    ):
        super().__init__(client, observability)
        self.index = index

    async def lookup(self, vehicle_id: int) -> Optional[Vehicle]:
        try:
            response = await self._run(
                f"get({self.index})",
                self.client.get,
                index=self.index,
                id=str(vehicle_id),
                missing_ok=True,
            )
        except NotFoundError:
            return None

        source = response["_source"]
        return Vehicle(
            id=int(source.get("id", vehicle_id)),
            plate_number=source["plate_number"],
            name=source.get("name", ""),
            type=source.get("type", ""),
        )


class ElasticsearchTelemetryStore(_ElasticsearchBacked, TelemetryStore):
    """GPS records in the gps_logs index."""

    def __init__(
        self,
        client: Elasticsearch,
        index: str = "gps_logs",
        sequence_index: str = "gps_log_sequence",
        observability: Optional[ObservabilityService] = None,
    ):
        super().__init__(client, observability)
        self.index = index
        self.sequence_index = sequence_index

    async def _next_id(self) -> int:
        # Re-indexing the counter document bumps its version by exactly one
        response = await self._run(
            f"index({self.sequence_index})",
            self.client.index,
            index=self.sequence_index,
            id=SEQUENCE_DOC_ID,
            document={"sequence": SEQUENCE_DOC_ID},
        )
        return int(response["_version"])

    async def insert(self, entry: NewTelemetryRecord) -> TelemetryRecord:
        """
        Store a record under the next sequence id.

        Raises:
            AppException: VALIDATION_ERROR for a timestamp date_nanos cannot
                hold; STORE_UNAVAILABLE on client failure, including an id
                that is already taken
        """
        if not DATE_NANOS_MIN <= entry.timestamp <= DATE_NANOS_MAX:
            raise validation_error({
                "timestamp": (
                    f"Timestamp must be between {DATE_NANOS_MIN.isoformat()} "
                    f"and {DATE_NANOS_MAX.isoformat()}"
                )
            })

        record = TelemetryRecord.from_new(await self._next_id(), entry)
        # create, never overwrite: a reset sequence must not replace stored logs
        await self._run(
            f"index({self.index})",
            self.client.index,
            index=self.index,
            id=str(record.id),
            document=_record_to_document(record),
            op_type="create",
            refresh=True,
        )
        return record

    async def find_latest_by_vehicle(self, vehicle_id: int) -> Optional[TelemetryRecord]:
        response = await self._run(
            f"search({self.index})",
            self.client.search,
            index=self.index,
            query={"term": {"vehicle_reference": vehicle_id}},
            sort=[{"timestamp": {"order": "desc"}}, {"id": {"order": "desc"}}],
            size=1,
        )
        hits = response["hits"]["hits"]
        if not hits:
            return None
        return _document_to_record(hits[0]["_source"])

    async def find_by_vehicle_and_range(
        self,
        vehicle_id: int,
        start: datetime,
        end: datetime,
        offset: int,
        limit: int,
    ) -> RecordSlice:
        # No stored timestamp lies outside the date_nanos range
        if end < DATE_NANOS_MIN or start > DATE_NANOS_MAX:
            return RecordSlice()
        start = max(start, DATE_NANOS_MIN)
        end = min(end, DATE_NANOS_MAX)

        response = await self._run(
            f"search({self.index})",
            self.client.search,
            index=self.index,
            query={
                "bool": {
                    "filter": [
                        {"term": {"vehicle_reference": vehicle_id}},
                        {"range": {"timestamp": {
                            "gte": start.isoformat(),
                            "lte": end.isoformat(),
                        }}},
                    ]
                }
            },
            sort=[{"timestamp": {"order": "asc"}}, {"id": {"order": "asc"}}],
            from_=offset,
            size=limit,
            track_total_hits=True,
        )
        hits = response["hits"]
        return RecordSlice(
            records=[_document_to_record(hit["_source"]) for hit in hits["hits"]],
            total=int(hits["total"]["value"]),
        )

    async def delete_older_than(self, threshold: datetime) -> int:
        response = await self._run(
            f"delete_by_query({self.index})",
            self.client.delete_by_query,
            index=self.index,
            query={"range": {"timestamp": {"lt": threshold.isoformat()}}},
            refresh=True,
            conflicts="proceed",
        )
        return int(response.get("deleted", 0))

    async def health_check(self) -> bool:
        loop = asyncio.get_running_loop()
        try:
            return bool(await loop.run_in_executor(None, self.client.ping))
        except Exception as e:
            logger.warning(f"Elasticsearch ping failed: {e}")
            return False
