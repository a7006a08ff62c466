"""
Unit tests for request parsing, the handler lifecycle and response helpers.
"""

import json
from decimal import Decimal

import pytest

from goodbricks_shared.errors import ConflictError, ValidationError
from goodbricks_shared.http import ApiRequest, handle_request, require_valid
from goodbricks_shared.responses import create_error_response, create_success_response


def make_event(**overrides):
    event = {
        'httpMethod': 'POST',
        'path': '/users/u1/groups',
        'pathParameters': {'userId': 'u1'},
        'queryStringParameters': None,
        'body': None,
        'requestContext': {'requestId': 'req-42'}
    }
    event.update(overrides)
    return event


class TestApiRequest:
    """Accessors over the proxy event."""

    def test_path_param_is_unquoted(self):
        request = ApiRequest(make_event(pathParameters={'email': 'a%2Bb%40x.org'}))
        assert request.path_param('email') == 'a+b@x.org'

    @pytest.mark.parametrize('params', [None, {}, {'userId': ''}, {'userId': '   '}])
    def test_missing_path_param(self, params):
        with pytest.raises(ValidationError) as exc_info:
            ApiRequest(make_event(pathParameters=params)).path_param('userId')
        assert exc_info.value.details == {'field': 'userId'}

    def test_query_param_defaults(self):
        request = ApiRequest(make_event(queryStringParameters={'limit': '', 'status': 'sent'}))
        assert request.query_param('limit', '50') == '50'
        assert request.query_param('status') == 'sent'
        assert request.query_param('nextToken') is None

    def test_json_body_numbers_are_decimal(self):
        request = ApiRequest(make_event(body='{"count": 3, "ratio": 0.5}'))
        body = request.json_body()
        assert body == {'count': 3, 'ratio': Decimal('0.5')}
        assert isinstance(body['ratio'], Decimal)

    def test_json_body_already_parsed(self):
        assert ApiRequest(make_event(body={'a': 1})).json_body() == {'a': 1}

    def test_missing_body(self):
        with pytest.raises(ValidationError):
            ApiRequest(make_event(body='')).json_body()
        assert ApiRequest(make_event()).json_body(required=False) == {}

    @pytest.mark.parametrize('body', ['{bad', '[1, 2]', '"text"'])
    def test_invalid_body(self, body):
        with pytest.raises(ValidationError):
            ApiRequest(make_event(body=body)).json_body()

    def test_require_valid(self):
        require_valid([])
        with pytest.raises(ValidationError) as exc_info:
            require_valid([{'field': 'name', 'message': 'Field is required'}])
        assert exc_info.value.details == {'errors': [{'field': 'name', 'message': 'Field is required'}]}


class TestHandleRequest:
    """Error mapping and lifecycle logging."""

    def test_success(self, capsys, cloudwatch):
        response = handle_request(make_event(), 'group-create', lambda request, logger: {'ok': True}, 201)

        assert response['statusCode'] == 201
        assert json.loads(response['body']) == {'ok': True}
        events = [json.loads(line)['event'] for line in capsys.readouterr().out.splitlines()]
        assert events == ['request_start', 'request_complete']
        metric_names = [
            metric['MetricName'] for metric in cloudwatch.put_metric_data.call_args.kwargs['MetricData']
        ]
        assert metric_names == ['RequestCount', 'Latency']

    def test_correlation_id_is_request_id(self, capsys):
        handle_request(make_event(), 'group-create', lambda request, logger: logger.correlation_id)
        lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
        assert {line['correlationId'] for line in lines} == {'req-42'}

    def test_domain_error(self, capsys):
        def conflict(request, logger):
            raise ConflictError("Group 'vip' already exists", {'groupId': 'vip'})

        response = handle_request(make_event(), 'group-create', conflict, 201)

        assert response['statusCode'] == 409
        assert json.loads(response['body']) == {
            'error': "Group 'vip' already exists", 'code': 'CONFLICT', 'details': {'groupId': 'vip'}
        }
        assert '"domain_error"' in capsys.readouterr().out

    def test_validation_error(self, cloudwatch):
        def invalid(request, logger):
            require_valid([{'field': 'groupName', 'message': 'Field is required'}])

        response = handle_request(make_event(), 'group-create', invalid)

        assert response['statusCode'] == 400
        metric = cloudwatch.put_metric_data.call_args.kwargs['MetricData'][0]
        assert metric['MetricName'] == 'ErrorCount'
        assert {'Name': 'ErrorCode', 'Value': 'VALIDATION_ERROR'} in metric['Dimensions']

    def test_unexpected_error(self, capsys):
        def boom(request, logger):
            raise KeyError('secret-internal-detail')

        response = handle_request(make_event(), 'group-create', boom)

        assert response['statusCode'] == 500
        assert 'secret-internal-detail' not in response['body']
        assert '"unexpected_error"' in capsys.readouterr().out

    def test_orphaned_keys_are_recorded(self, capsys, cloudwatch):
        orphaned = [{'PK': 'USER#u1#GROUP#vip', 'SK': 'AUDIENCE#a@x.org'}]
        response = handle_request(
            make_event(), 'group-member-remove', lambda request, logger: {'removed': True, 'orphanedKeys': orphaned}
        )

        assert response['statusCode'] == 200
        assert 'stale_copies_orphaned' in capsys.readouterr().out
        names = [metric['MetricName'] for metric in cloudwatch.put_metric_data.call_args.kwargs['MetricData']]
        assert 'OrphanedCopies' in names


class TestResponses:

    def test_decimals_and_sets_serialize(self):
        response = create_success_response(200, {'count': Decimal('3'), 'ratio': Decimal('0.25'), 'tags': {'b', 'a'}})
        assert json.loads(response['body']) == {'count': 3, 'ratio': 0.25, 'tags': ['a', 'b']}
        assert response['headers']['Content-Type'] == 'application/json'
        assert response['headers']['Access-Control-Allow-Origin'] == '*'

    def test_error_without_details(self):
        body = json.loads(create_error_response(404, 'NOT_FOUND', 'Group not found')['body'])
        assert body == {'error': 'Group not found', 'code': 'NOT_FOUND'}
