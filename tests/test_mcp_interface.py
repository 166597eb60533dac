"""Tests for the mcp_interface server entry point."""

from unittest.mock import Mock, patch

import pytest

from nexusmem import mcp_interface
from nexusmem.utils.config import MCPConfig


@pytest.mark.parametrize('transport, expected', [
    ('stdio', {'transport': 'stdio'}),
    ('sse', {'transport': 'sse', 'host': '0.0.0.0', 'port': 9000}),
])
def test_main_runs_configured_transport(transport, expected):
    app_config = Mock(mcp=MCPConfig(transport=transport, host='0.0.0.0', port=9000))

    with patch.object(mcp_interface, 'config', app_config), patch.object(mcp_interface, 'mcp') as server:
        mcp_interface.main()

    server.run.assert_called_once_with(**expected)


def test_memory_service_is_installable():
    service = Mock()
    mcp_interface.set_memory_service(service)
    try:
        assert mcp_interface.get_memory_service() is service
    finally:
        mcp_interface.set_memory_service(None)
