"""状态查询测试：覆盖请求头、成功码、失败码、传输错误与解码错误分类。"""

from __future__ import annotations

import httpx
import pytest

from conftest import CALLBACK_URL, ScriptedEndpoint, corrupt_gzip_reply, initial_status, status_response
from jobwatch.infra.jobs.fetcher import (
    StatusDecodeError,
    StatusFetcher,
    StatusFetchError,
    StatusHTTPError,
    StatusTransportError,
)


async def test_query_sends_accept_and_auth_headers(make_session) -> None:
    """验证请求为 GET callback URL，并携带 Accept 与 X-Auth-Token。"""
    endpoint = ScriptedEndpoint([status_response("RUNNING")])
    session = make_session(endpoint, token="secret-token")

    await StatusFetcher().query(session, initial_status())

    request = endpoint.requests[0]
    assert request.method == "GET"
    assert str(request.url) == CALLBACK_URL
    assert request.headers["Accept"] == "application/json"
    assert request.headers["X-Auth-Token"] == "secret-token"


@pytest.mark.parametrize("status_code", [200, 202])
async def test_query_success_codes_replace_snapshot(make_session, status_code: int) -> None:
    """验证 200/202 响应会替换快照字段。
    参数:
    - make_session: 按 handler 构造认证会话的夹具。
    - status_code: 成功集合内的响应码。
    返回:
    - 无返回值；断言失败时抛出 AssertionError。
    """
    body = {"status": "COMPLETED", "jobId": "job-1", "callbackUrl": CALLBACK_URL}
    session = make_session(ScriptedEndpoint([httpx.Response(status_code, json=body)]))

    updated = await StatusFetcher().query(session, initial_status())

    assert updated.status == "COMPLETED"
    assert updated.job_id == "job-1"
    assert updated.is_terminal


@pytest.mark.parametrize("status_code", [301, 400, 401, 404, 413, 418, 500, 503])
async def test_query_other_codes_raise_http_error(make_session, status_code: int) -> None:
    """验证成功集合之外的响应码均归类为 StatusHTTPError，并保留原始响应体。
    参数:
    - make_session: 按 handler 构造认证会话的夹具。
    - status_code: 成功集合之外的响应码，含未显式列出的取值。
    返回:
    - 无返回值；断言失败时抛出 AssertionError。
    """
    session = make_session(ScriptedEndpoint([httpx.Response(status_code, text="overLimit")]))
    snapshot = initial_status()

    with pytest.raises(StatusHTTPError) as exc_info:
        await StatusFetcher().query(session, snapshot)

    assert exc_info.value.status_code == status_code
    assert exc_info.value.body == "overLimit"
    assert exc_info.value.callback_url == CALLBACK_URL
    assert snapshot.status == "RUNNING"


async def test_query_transport_failure_raises_transport_error(make_session) -> None:
    """验证网络层异常被包装为 StatusTransportError。"""

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    session = make_session(refuse)

    with pytest.raises(StatusTransportError) as exc_info:
        await StatusFetcher().query(session, initial_status())

    assert isinstance(exc_info.value, StatusFetchError)
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


@pytest.mark.parametrize(
    "content",
    [
        b"{not json",
        b"[1, 2, 3]",
        b'{"status": 5, "jobId": "job-1", "callbackUrl": "x"}',
        b'{"status": null}',
    ],
)
async def test_query_bad_body_raises_decode_error(make_session, content: bytes) -> None:
    """验证非法 JSON 或结构不符的响应体归类为 StatusDecodeError。
    参数:
    - make_session: 按 handler 构造认证会话的夹具。
    - content: 原始响应体字节。
    返回:
    - 无返回值；断言失败时抛出 AssertionError。
    """
    session = make_session(ScriptedEndpoint([httpx.Response(200, content=content)]))
    snapshot = initial_status()

    with pytest.raises(StatusDecodeError):
        await StatusFetcher().query(session, snapshot)

    assert snapshot.status == "RUNNING"


async def test_query_partial_body_keeps_previous_fields(make_session) -> None:
    """验证响应缺失的字段保留原快照取值，多余字段被忽略。"""
    body = {"status": "ERROR", "request": "{...}", "error": {"code": 400}}
    session = make_session(ScriptedEndpoint([httpx.Response(202, json=body)]))

    updated = await StatusFetcher().query(session, initial_status())

    assert updated.status == "ERROR"
    assert updated.job_id == "job-1"
    assert updated.callback_url == CALLBACK_URL


async def test_query_undecodable_body_raises_transport_error(make_session) -> None:
    """验证响应体解压失败（非 TransportError 的 RequestError）同样归类为 StatusTransportError。
    参数:
    - make_session: 按 handler 构造认证会话的夹具。
    返回:
    - 无返回值；断言失败时抛出 AssertionError。
    """
    session = make_session(corrupt_gzip_reply)

    with pytest.raises(StatusTransportError) as exc_info:
        await StatusFetcher().query(session, initial_status())

    assert isinstance(exc_info.value.__cause__, httpx.DecodingError)
