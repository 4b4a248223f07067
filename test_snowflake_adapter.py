"""Tests for the Snowflake client with a mocked connector connection."""

from unittest import mock

import pytest
from snowflake.connector import DictCursor
from snowflake.connector.errors import ProgrammingError

from errors import CollaboratorError
from models import GranteeKind, RoleGrantRecord, WarehouseUser
from snowflake_adapter import SnowflakeClient, as_bool


@pytest.fixture
def client():
    snowflake = SnowflakeClient('xy12345', 'SYNC_USER', 'secret', role='SECURITYADMIN')
    snowflake.conn = mock.Mock()
    return snowflake


def _answer(client, results):
    """Make the connection answer each statement with the given rows."""
    statements = []
    cursor = mock.MagicMock()
    cursor.__enter__.return_value = cursor
    cursor.__exit__.return_value = False
    cursor.execute.side_effect = statements.append
    cursor.fetchall.side_effect = lambda: results[statements[-1]]
    client.conn.cursor.return_value = cursor
    return statements


@pytest.mark.parametrize('value, expected', [
    ('true', True), ('TRUE', True), ('false', False), (True, True), (False, False), (None, False),
])
def test_as_bool(value, expected):
    assert as_bool(value) is expected


def test_account_identifier_includes_region():
    assert SnowflakeClient('xy12345', 'u', 'p', region='eu-central-1').account_identifier == 'xy12345.eu-central-1'
    assert SnowflakeClient('xy12345.eu-central-1', 'u', 'p', region='eu-central-1').account_identifier == \
        'xy12345.eu-central-1'
    assert SnowflakeClient('xy12345', 'u', 'p').account_identifier == 'xy12345'


def test_list_users(client):
    _answer(client, {'SHOW USERS': [
        {'name': 'alice@example.com', 'has_password': 'false', 'disabled': 'false'},
        {'name': 'SVC_ETL', 'has_password': 'true', 'disabled': 'false'},
    ]})

    assert client.list_users() == [
        WarehouseUser('alice@example.com', has_password=False, disabled=False),
        WarehouseUser('SVC_ETL', has_password=True, disabled=False),
    ]
    client.conn.cursor.assert_called_with(DictCursor)


def test_list_users_with_unexpected_columns(client):
    _answer(client, {'SHOW USERS': [{'login_name': 'ALICE'}]})

    with pytest.raises(CollaboratorError):
        client.list_users()


def test_list_roles(client):
    _answer(client, {'SHOW ROLES': [{'name': 'ANALYST'}, {'name': 'PUBLIC'}]})

    assert client.list_roles() == ['ANALYST', 'PUBLIC']


def test_list_grants_of_roles(client):
    statements = _answer(client, {
        'SHOW GRANTS OF ROLE "ANALYST"': [
            {'role': 'ANALYST', 'granted_to': 'USER', 'grantee_name': 'alice@example.com'},
            {'role': 'ANALYST', 'granted_to': 'ROLE', 'grantee_name': 'SYSADMIN'},
            {'role': 'ANALYST', 'granted_to': 'SHARE', 'grantee_name': 'PARTNER'},
        ],
        'SHOW GRANTS OF ROLE "we""ird"': [],
    })

    grants = client.list_grants_of_roles(['ANALYST', 'we"ird'])

    assert grants == [
        RoleGrantRecord('ANALYST', 'alice@example.com', GranteeKind.USER),
        RoleGrantRecord('ANALYST', 'SYSADMIN', GranteeKind.ROLE),
    ]
    assert statements == ['SHOW GRANTS OF ROLE "ANALYST"', 'SHOW GRANTS OF ROLE "we""ird"']


def test_query_error_becomes_collaborator_error(client):
    cursor = mock.MagicMock()
    cursor.__enter__.return_value = cursor
    cursor.__exit__.return_value = False
    cursor.execute.side_effect = ProgrammingError('Insufficient privileges')
    client.conn.cursor.return_value = cursor

    with pytest.raises(CollaboratorError):
        client.list_roles()


def test_execute_runs_block(client):
    client.conn.execute_string.return_value = [mock.Mock(query='BEGIN TRANSACTION;'), mock.Mock(query='COMMIT;')]

    client.execute('BEGIN TRANSACTION;\nCOMMIT;')

    client.conn.execute_string.assert_called_once_with('BEGIN TRANSACTION;\nCOMMIT;')
    client.conn.rollback.assert_not_called()


def test_execute_failure_rolls_back(client):
    client.conn.execute_string.side_effect = ProgrammingError('Role does not exist')

    with pytest.raises(CollaboratorError):
        client.execute('BEGIN TRANSACTION;\nGRANT ROLE "X" TO USER "a";\nCOMMIT;')

    client.conn.rollback.assert_called_once_with()


def test_connect_passes_credentials():
    snowflake = SnowflakeClient('xy12345', 'SYNC_USER', 'secret', role='SECURITYADMIN', region='eu-central-1')

    with mock.patch('snowflake_adapter.snowflake.connector.connect') as connect:
        snowflake.connect_snowflake()

    connect.assert_called_once_with(
        account='xy12345.eu-central-1',
        user='SYNC_USER',
        password='secret',
        role='SECURITYADMIN'
    )
    assert snowflake.conn is connect.return_value
