"""AWS Lambda handlers for What's On event sync."""
import base64
import json
import logging
import time
from typing import Any, Callable, Dict

from config import Settings
from errors import ConfigurationError, InvalidPayloadError, SyncError
from processor.dedup_engine import DedupEngine
from processor.merge_resolver import MergeResolver
from processor.publisher import PublicationPipeline
from sources import eventbrite, skiddle, ticketmaster
from sources.base import ProviderAdapter, ProviderConfig
from sources.manual import ManualSubmission
from sources.webhook import WebhookAdapter
from storage.airtable_client import AirtableClient
from storage.catalog_store import CatalogStore

logger = logging.getLogger(__name__)

_RESERVED_ATTRS = set(
    logging.LogRecord('', 0, '', 0, '', (), None).__dict__
) | {'message', 'asctime'}

Operation = Callable[[Settings, Dict[str, Any]], Dict[str, Any]]


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including any ``extra`` fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def build_store(settings: Settings) -> CatalogStore:
    """Create a CatalogStore for the configured Airtable base."""
    client = AirtableClient(
        api_key=settings.airtable_api_key,
        base_id=settings.airtable_base_id,
        timeout=settings.timeout_seconds
    )
    return CatalogStore(
        client,
        events_table=settings.events_table,
        staging_table=settings.staging_table,
        playlists_table=settings.playlists_table
    )


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': {'Content-Type': 'application/json'},
        'body': json.dumps(body)
    }


def _error_response(
    status_code: int,
    message: str,
    error: Exception,
    start_time: float
) -> Dict[str, Any]:
    return _response(status_code, {
        'success': False,
        'message': message,
        'error': str(error),
        'error_type': type(error).__name__,
        'duration_seconds': round(time.time() - start_time, 2)
    })


def _run(job: str, event: Dict[str, Any], operation: Operation) -> Dict[str, Any]:
    """
    Run one job and convert its outcome into a response.

    Args:
        job: Job name used in logs and messages
        event: Lambda event payload
        operation: Callable doing the work and returning a summary dict

    Returns:
        Response dict with statusCode and JSON body
    """
    start_time = time.time()

    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        setup_logging()
        logger.error(f"{job} not configured: {e}")
        return _error_response(400, f'{job} is not configured', e, start_time)

    setup_logging(settings.log_level)
    logger.info(f"{job} started", extra={'job': job})

    try:
        summary = operation(settings, event or {})
    except (ConfigurationError, InvalidPayloadError) as e:
        logger.error(
            f"{job} rejected: {e}",
            extra={'job': job, 'error_type': type(e).__name__}
        )
        return _error_response(400, f'{job} failed', e, start_time)
    except SyncError as e:
        logger.error(
            f"{job} failed: {e}",
            extra={'job': job, 'error_type': type(e).__name__},
            exc_info=True
        )
        return _error_response(500, f'{job} failed', e, start_time)
    except Exception as e:
        logger.error(
            f"{job} crashed: {e}",
            extra={'job': job, 'error_type': type(e).__name__},
            exc_info=True
        )
        return _error_response(500, f'{job} failed', e, start_time)

    duration = time.time() - start_time
    summary['duration_seconds'] = round(duration, 2)
    logger.info(f"{job} completed", extra={'job': job, 'summary': summary})
    return _response(200, summary)


def _parse_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """Extract the JSON body of an API Gateway proxy event."""
    body = event.get('body', event)
    if isinstance(body, dict):
        return body
    if not body:
        raise InvalidPayloadError("Request body is empty")

    try:
        if event.get('isBase64Encoded'):
            body = base64.b64decode(body).decode('utf-8')
        parsed = json.loads(body)
    except ValueError as e:
        raise InvalidPayloadError(f"Request body is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise InvalidPayloadError("Request body must be a JSON object")
    return parsed


def _provider_sync(config: ProviderConfig, key_attr: str, env_name: str) -> Operation:
    def operation(settings: Settings, event: Dict[str, Any]) -> Dict[str, Any]:
        adapter = ProviderAdapter(
            config,
            api_key=settings.require(key_attr, env_name),
            store=build_store(settings),
            timeout=settings.timeout_seconds,
            max_workers=settings.max_workers
        )
        return adapter.run().to_summary()
    return operation


def _publish(settings: Settings, event: Dict[str, Any]) -> Dict[str, Any]:
    return PublicationPipeline(build_store(settings)).publish().to_summary()


def _deduplicate(settings: Settings, event: Dict[str, Any]) -> Dict[str, Any]:
    store = build_store(settings)
    events = store.get_catalog_events()
    groups = DedupEngine().find_mergeable_groups(events)
    return MergeResolver(store).resolve(groups, total=len(events)).to_summary()


def _webhook(settings: Settings, event: Dict[str, Any]) -> Dict[str, Any]:
    payload = _parse_body(event)
    logger.info(f"Webhook received from: {payload.get('source', 'unnamed source')}")
    return WebhookAdapter(build_store(settings)).handle(payload).to_summary()


def _submit(settings: Settings, event: Dict[str, Any]) -> Dict[str, Any]:
    payload = _parse_body(event)
    return ManualSubmission(build_store(settings)).submit(payload).to_summary()


def sync_ticketmaster_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Stage new Ticketmaster events."""
    return _run('sync-ticketmaster', event, _provider_sync(
        ticketmaster.CONFIG, 'ticketmaster_api_key', 'TICKETMASTER_API_KEY'
    ))


def sync_skiddle_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Stage new Skiddle events."""
    return _run('sync-skiddle', event, _provider_sync(
        skiddle.CONFIG, 'skiddle_api_key', 'SKIDDLE_API_KEY'
    ))


def sync_eventbrite_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Stage new Eventbrite events."""
    return _run('sync-eventbrite', event, _provider_sync(
        eventbrite.CONFIG, 'eventbrite_token', 'EVENTBRITE_TOKEN'
    ))


def publish_staging_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Publish Approved staged events into the catalog."""
    return _run('publish-staging', event, _publish)


def deduplicate_events_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Merge catalog events that share a title and date."""
    return _run('deduplicate-events', event, _deduplicate)


def webhook_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Receive a scraper webhook delivery (API Gateway proxy event)."""
    return _run('webhook-scraper', event, _webhook)


def submit_event_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Create a manually submitted event (API Gateway proxy event)."""
    return _run('submit-event', event, _submit)


JOBS = {
    'sync-ticketmaster': sync_ticketmaster_handler,
    'sync-skiddle': sync_skiddle_handler,
    'sync-eventbrite': sync_eventbrite_handler,
    'publish-staging': publish_staging_handler,
    'deduplicate-events': deduplicate_events_handler,
}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Dispatch a scheduled (EventBridge) invocation by its ``job`` name.

    Args:
        event: EventBridge payload, e.g. ``{"job": "sync-skiddle"}``
        context: Lambda context object

    Returns:
        Response dict with statusCode and summary statistics
    """
    job = (event or {}).get('job')
    handler = JOBS.get(job)
    if handler is None:
        setup_logging()
        logger.error(f"Unknown job: {job!r}")
        return _response(400, {
            'success': False,
            'message': 'Unknown job',
            'error': f"Unknown job: {job!r}",
            'available_jobs': sorted(JOBS)
        })
    return handler(event, context)
