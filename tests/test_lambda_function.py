"""Integration tests for Lambda handlers."""
import base64
import json
import logging
import os
from unittest.mock import Mock, patch

import pytest

from errors import CatalogStoreError, ConfigurationError, UpstreamFetchError
from lambda_function import (
    JsonFormatter, deduplicate_events_handler, lambda_handler,
    publish_staging_handler, setup_logging, submit_event_handler,
    sync_skiddle_handler, webhook_handler
)
from processor.models import PublishResult, SyncResult


@pytest.fixture
def mock_env():
    """Set up environment variables for testing."""
    env_vars = {
        'AIRTABLE_API_KEY': 'key123',
        'AIRTABLE_BASE_ID': 'appTEST',
        'SKIDDLE_API_KEY': 'sk-key',
        'LOG_LEVEL': 'INFO',
        'TIMEOUT_SECONDS': '5'
    }
    with patch.dict(os.environ, env_vars, clear=True):
        yield env_vars


@pytest.fixture
def mock_context():
    """Create a mock Lambda context."""
    context = Mock()
    context.function_name = 'test-function'
    context.aws_request_id = 'test-request-id'
    return context


def body_of(response):
    return json.loads(response['body'])


class TestScheduledHandlers:
    """Test cases for the scheduled job handlers."""

    @patch('lambda_function.ProviderAdapter')
    def test_successful_sync(self, mock_adapter_class, mock_env, mock_context):
        mock_adapter_class.return_value.run.return_value = SyncResult(
            synced=3, total=5, skipped=2
        )

        response = sync_skiddle_handler({}, mock_context)

        assert response['statusCode'] == 200
        body = body_of(response)
        assert body['success'] is True
        assert body['synced'] == 3
        assert body['skipped'] == 2
        assert body['total'] == 5
        assert 'duration_seconds' in body
        assert mock_adapter_class.call_args.kwargs['api_key'] == 'sk-key'

    def test_sync_without_provider_key(self, mock_env, mock_context):
        with patch.dict(os.environ, {'SKIDDLE_API_KEY': ''}):
            response = sync_skiddle_handler({}, mock_context)

        assert response['statusCode'] == 400
        body = body_of(response)
        assert body['success'] is False
        assert 'SKIDDLE_API_KEY' in body['error']
        assert body['error_type'] == 'ConfigurationError'

    @patch('lambda_function.ProviderAdapter')
    def test_upstream_failure(self, mock_adapter_class, mock_env, mock_context):
        mock_adapter_class.return_value.run.side_effect = UpstreamFetchError(
            'Skiddle', 'query failed'
        )

        response = sync_skiddle_handler({}, mock_context)

        assert response['statusCode'] == 500
        body = body_of(response)
        assert body['error_type'] == 'UpstreamFetchError'
        assert 'Skiddle' in body['error']

    @patch('lambda_function.PublicationPipeline')
    def test_publish(self, mock_pipeline_class, mock_env, mock_context):
        mock_pipeline_class.return_value.publish.return_value = PublishResult(
            published=4, merged=1, total=5
        )

        response = publish_staging_handler({}, mock_context)

        assert response['statusCode'] == 200
        assert body_of(response)['published'] == 4
        assert body_of(response)['merged'] == 1

    @patch('lambda_function.PublicationPipeline')
    def test_missing_playlist_is_client_error(self, mock_pipeline_class, mock_env, mock_context):
        mock_pipeline_class.return_value.publish.side_effect = ConfigurationError(
            'Playlists not found for handles: @Nowhere'
        )

        response = publish_staging_handler({}, mock_context)

        assert response['statusCode'] == 400
        assert '@Nowhere' in body_of(response)['error']

    @patch('lambda_function.PublicationPipeline')
    def test_store_failure(self, mock_pipeline_class, mock_env, mock_context):
        mock_pipeline_class.return_value.publish.side_effect = CatalogStoreError('down', 503)

        response = publish_staging_handler({}, mock_context)

        assert response['statusCode'] == 500
        assert body_of(response)['error_type'] == 'CatalogStoreError'

    @patch('lambda_function.PublicationPipeline')
    def test_unexpected_error(self, mock_pipeline_class, mock_env, mock_context):
        mock_pipeline_class.return_value.publish.side_effect = RuntimeError('boom')

        response = publish_staging_handler({}, mock_context)

        assert response['statusCode'] == 500
        assert body_of(response)['error'] == 'boom'

    def test_missing_airtable_settings(self, mock_context):
        with patch.dict(os.environ, {}, clear=True):
            response = publish_staging_handler({}, mock_context)

        assert response['statusCode'] == 400
        assert 'AIRTABLE_API_KEY' in body_of(response)['error']

    def test_deduplicate_merges_catalog_duplicates(self, airtable, mock_env, mock_context):
        keeper = airtable.seed('Events', {'Event': 'Gig', 'When': '2026-03-01', 'Playlist': ['plA']})
        airtable.seed('Events', {'Event': 'Gig', 'When': '2026-03-01', 'Playlist': ['plB']})
        airtable.seed('Events', {'Event': 'Other', 'When': '2026-03-01', 'Playlist': ['plA']})

        response = deduplicate_events_handler({}, mock_context)

        assert response['statusCode'] == 200
        body = body_of(response)
        assert body['total'] == 3
        assert body['groups'] == 1
        assert body['deleted'] == 1
        events = {r['id']: r['fields'] for r in airtable.records('Events')}
        assert len(events) == 2
        assert events[keeper]['Playlist'] == ['plA', 'plB']

        second = body_of(deduplicate_events_handler({}, mock_context))
        assert second['groups'] == 0


class TestDispatcher:
    """Test cases for lambda_handler job dispatch."""

    @patch('lambda_function.PublicationPipeline')
    def test_dispatches_by_job(self, mock_pipeline_class, mock_env, mock_context):
        mock_pipeline_class.return_value.publish.return_value = PublishResult(
            published=0, merged=0, total=0
        )

        response = lambda_handler({'job': 'publish-staging'}, mock_context)

        assert response['statusCode'] == 200
        mock_pipeline_class.return_value.publish.assert_called_once()

    def test_unknown_job(self, mock_env, mock_context):
        response = lambda_handler({'job': 'nope'}, mock_context)

        assert response['statusCode'] == 400
        body = body_of(response)
        assert 'sync-skiddle' in body['available_jobs']
        assert 'publish-staging' in body['available_jobs']


class TestHttpHandlers:
    """Test cases for the API Gateway handlers."""

    def test_webhook_stages_items(self, airtable, mock_env, mock_context):
        payload = {
            'source': 'brighton-dome',
            'task': {'capturedLists': {'Events': [
                {'Title': 'Gig', 'Date': '2026-11-01', 'Link': 'https://brightondome.org/e/1'}
            ]}}
        }

        response = webhook_handler({'body': json.dumps(payload)}, mock_context)

        assert response['statusCode'] == 200
        assert body_of(response)['inserted'] == 1
        assert airtable.records('Staging')[0]['fields']['Source'] == 'Brighton Dome'

    def test_webhook_accepts_base64_body(self, airtable, mock_env, mock_context):
        payload = {'source': 'brighton-dome', 'data': {
            'Title': 'Gig', 'Date': '2026-11-01', 'Link': 'https://brightondome.org/e/1'
        }}
        event = {
            'body': base64.b64encode(json.dumps(payload).encode('utf-8')).decode('ascii'),
            'isBase64Encoded': True
        }

        response = webhook_handler(event, mock_context)

        assert response['statusCode'] == 200
        assert body_of(response)['inserted'] == 1

    @pytest.mark.parametrize('body', ['not json', '', '[1, 2]'])
    def test_webhook_rejects_bad_body(self, body, mock_env, mock_context):
        response = webhook_handler({'body': body}, mock_context)

        assert response['statusCode'] == 400
        assert body_of(response)['error_type'] == 'InvalidPayloadError'

    def test_webhook_unknown_source(self, airtable, mock_env, mock_context):
        payload = {'source': 'nowhere', 'data': {'Title': 'Gig'}}

        response = webhook_handler({'body': json.dumps(payload)}, mock_context)

        assert response['statusCode'] == 400

    def test_submit_event(self, airtable, mock_env, mock_context):
        airtable.seed('Playlists', {'Handle': '@Community'})
        payload = {'title': 'Beach Clean', 'date': '2026-11-07', 'playlist': '@Community'}

        first = body_of(submit_event_handler({'body': json.dumps(payload)}, mock_context))
        second = body_of(submit_event_handler({'body': json.dumps(payload)}, mock_context))

        assert first['created'] is True
        assert second['created'] is False
        assert second['skipped'] is True
        assert second['record_id'] == first['record_id']


    def test_submit_with_numeric_date_is_client_error(self, airtable, mock_env, mock_context):
        payload = {'title': 'Gig', 'date': 20260301, 'playlist': '@Community'}

        response = submit_event_handler({'body': json.dumps(payload)}, mock_context)

        assert response['statusCode'] == 400
        assert body_of(response)['error_type'] == 'InvalidPayloadError'


class TestEndToEnd:
    """Webhook and provider data flowing through staging into the catalog."""

    def test_sources_publish_into_one_catalog(self, airtable, mock_env, mock_context):
        dome = airtable.seed('Playlists', {'Handle': '@BrightonDome'})
        skiddle_playlist = airtable.seed('Playlists', {'Handle': '@Skiddle'})
        airtable.rsps.add(
            'GET', 'https://www.skiddle.com/api/v1/events/search/', json={'results': [
                {'id': '1', 'eventname': 'Gig', 'EventCode': 'LIVE',
                 'venue': {'name': 'Brighton Dome'}, 'date': '2026-11-01',
                 'link': 'https://www.skiddle.com/e/1'}
            ]}
        )
        webhook = {'source': 'brighton-dome', 'data': {
            'Title': 'Gig (LIVE) @ Brighton Dome', 'Date': '2026-11-01',
            'Link': 'https://brightondome.org/e/1'
        }}

        webhook_handler({'body': json.dumps(webhook)}, mock_context)
        sync_skiddle_handler({}, mock_context)
        published = body_of(publish_staging_handler({}, mock_context))

        assert published['published'] == 1
        assert published['merged'] == 1
        events = airtable.records('Events')
        assert len(events) == 1
        assert events[0]['fields']['Playlist'] == [dome, skiddle_playlist]

        sync_skiddle_handler({}, mock_context)
        assert body_of(publish_staging_handler({}, mock_context))['total'] == 0


class TestSetupLogging:
    """Test cases for logging setup."""

    def test_setup_logging_default_level(self):
        setup_logging()
        assert logging.getLogger().level == logging.INFO

    def test_setup_logging_debug_level(self):
        setup_logging('DEBUG')
        assert logging.getLogger().level == logging.DEBUG

    def test_json_formatter_includes_extra_fields(self):
        record = logging.LogRecord('test', logging.INFO, __file__, 1, 'done', (), None)
        record.job = 'publish-staging'
        record.summary = {'published': 2}

        data = json.loads(JsonFormatter().format(record))

        assert data['message'] == 'done'
        assert data['level'] == 'INFO'
        assert data['job'] == 'publish-staging'
        assert data['summary'] == {'published': 2}
