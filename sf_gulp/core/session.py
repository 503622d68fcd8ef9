"""
Interface to the org's REST, Tooling and Metadata APIs.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
import xml.etree.ElementTree as ET
from logging import Logger
from typing import Any, Iterable, Protocol
from urllib.parse import quote

import requests

from .exceptions import ApiError, RetrieveError
from .utils import METADATA_NS

__all__ = [
    "Connection",
    "Session",
]
__canonical_syms__ = __all__

DEFAULT_API_VERSION = "58.0"
"""
API version used when none is configured.
"""

REQUEST_TIMEOUT = 60.0
"""
Timeout for each HTTP request.
"""

MAX_FETCH = 100000
"""
Maximum number of records returned from a single query.
"""

POLL_INTERVAL = 5.0
"""
Seconds between retrieve status checks.
"""

POLL_TIMEOUT = 10 * 60.0
"""
Seconds to wait for a retrieve to complete.
"""

SOAP_NS = "http://schemas.xmlsoap.org/soap/envelope/"


class Connection(Protocol):
    """
    Remote operations required by the readers. Implemented by
    {obj}`Session`; tests provide an in-memory implementation.
    """

    async def query(
        self,
        sobject: str,
        fields: Iterable[str],
        where: str | None = None,
        *,
        tooling: bool = True,
    ) -> list[dict[str, Any]]:
        ...

    async def retrieve(
        self, metadata_type: str, members: Iterable[str]
    ) -> bytes:
        ...

    async def describe_global(self) -> list[str]:
        ...

    async def describe(self, sobject: str) -> dict[str, Any]:
        ...


class Session:
    """
    Connection to an org using an access token which was already issued,
    e.g. by the `sf` CLI.

    Requests are made with `requests` in worker threads so that
    concurrent readers don't block each other.
    """

    _instance_url: str
    """
    Base URL of the org, e.g. `https://mydomain.my.salesforce.com`.
    """

    _api_version: str
    """
    API version, e.g. `58.0`.
    """

    _access_token: str

    _timeout: float
    _poll_interval: float
    _poll_timeout: float

    _http: requests.Session
    """
    HTTP session shared by all requests.
    """

    _logger: Logger

    def __init__(
        self,
        instance_url: str,
        access_token: str,
        *,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = REQUEST_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
        poll_timeout: float = POLL_TIMEOUT,
        logger: Logger | None = None,
    ):
        """
        :param instance_url: Base URL of the org
        :param access_token: OAuth access token or session id
        :param api_version: API version to use for all requests
        :param timeout: Timeout for each HTTP request, in seconds
        :param poll_interval: Seconds between retrieve status checks
        :param poll_timeout: Seconds to wait for a retrieve to complete
        :param logger: Logger to use, or `None` to use default logger
        """
        self._logger = logger or logging.getLogger()
        self._instance_url = instance_url.rstrip("/")
        self._access_token = access_token
        self._api_version = api_version
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._poll_timeout = poll_timeout

        self._http = requests.Session()
        self._http.headers.update(
            {"Authorization": f"Bearer {self._access_token}"}
        )

    def __str__(self):
        return f"Session: instance_url='{self._instance_url}', api_version={self._api_version}"

    @property
    def instance_url(self) -> str:
        return self._instance_url

    @property
    def api_version(self) -> str:
        return self._api_version

    async def get_api_versions(self) -> list[str]:
        """
        Get API versions supported by the org, oldest first.
        """
        versions = await asyncio.to_thread(
            self._get_json, f"{self._instance_url}/services/data/"
        )
        return [v["version"] for v in versions]

    async def query(
        self,
        sobject: str,
        fields: Iterable[str],
        where: str | None = None,
        *,
        tooling: bool = True,
    ) -> list[dict[str, Any]]:
        """
        Get all records of the given type matching the filter, following
        result pages up to {obj}`MAX_FETCH` records.

        :param sobject: Record type, e.g. `ApexClass`
        :param fields: Fields to select
        :param where: SOQL filter expression, without `WHERE`
        :param tooling: Use the Tooling API rather than the data API
        """
        soql = f"SELECT {', '.join(fields)} FROM {sobject}"
        if where:
            soql += f" WHERE {where}"

        return await asyncio.to_thread(self._query, soql, tooling)

    async def retrieve(
        self, metadata_type: str, members: Iterable[str]
    ) -> bytes:
        """
        Retrieve definitions of the given members as a zip archive.

        :param metadata_type: Metadata type name, e.g. `CustomObject`
        :param members: Full names of members to retrieve
        """
        members = list(members)
        process_id = await asyncio.to_thread(
            self._start_retrieve, metadata_type, members
        )
        self._logger.debug(
            f"Started retrieve {process_id} of {len(members)} {metadata_type} members"
        )

        deadline = time.monotonic() + self._poll_timeout
        while True:
            result = await asyncio.to_thread(
                self._check_retrieve, process_id
            )
            if result is not None:
                return result

            if time.monotonic() > deadline:
                raise RetrieveError(
                    f"Retrieve {process_id} did not complete within {self._poll_timeout}s"
                )
            await asyncio.sleep(self._poll_interval)

    async def describe_global(self) -> list[str]:
        """
        Get names of all record types visible to the caller.
        """
        result = await asyncio.to_thread(
            self._get_json, f"{self._data_url}/sobjects/"
        )
        return [s["name"] for s in result["sobjects"]]

    async def describe(self, sobject: str) -> dict[str, Any]:
        """
        Describe a record type, including its fields.
        """
        return await asyncio.to_thread(
            self._get_json,
            f"{self._data_url}/sobjects/{quote(sobject)}/describe/",
        )

    @property
    def _data_url(self) -> str:
        return f"{self._instance_url}/services/data/v{self._api_version}"

    @property
    def _metadata_url(self) -> str:
        return f"{self._instance_url}/services/Soap/m/{self._api_version}"

    def _query(self, soql: str, tooling: bool) -> list[dict[str, Any]]:
        base_url = f"{self._data_url}/tooling" if tooling else self._data_url
        result = self._get_json(f"{base_url}/query/", params={"q": soql})
        records: list[dict[str, Any]] = list(result["records"])

        while not result["done"] and len(records) < MAX_FETCH:
            result = self._get_json(
                f"{self._instance_url}{result['nextRecordsUrl']}"
            )
            records += result["records"]

        if len(records) > MAX_FETCH:
            self._logger.warning(
                f"Query returned more than {MAX_FETCH} records, truncating: {soql}"
            )
            records = records[:MAX_FETCH]

        return [_strip_attributes(r) for r in records]

    def _get_json(self, url: str, params: dict[str, str] | None = None) -> Any:
        response = self._http.get(url, params=params, timeout=self._timeout)

        if not response.ok:
            message = _get_error_message(response)
            self._logger.error(
                f"Request to '{url}' failed: status={response.status_code}, reason={message}"
            )
            raise ApiError(message, response.status_code)

        return response.json()

    def _start_retrieve(self, metadata_type: str, members: list[str]) -> str:
        retrieve = ET.Element(f"{{{METADATA_NS}}}retrieve")
        request = ET.SubElement(retrieve, f"{{{METADATA_NS}}}retrieveRequest")
        _sub_element(request, "apiVersion", self._api_version)
        _sub_element(request, "singlePackage", "false")

        unpackaged = ET.SubElement(request, f"{{{METADATA_NS}}}unpackaged")
        types = ET.SubElement(unpackaged, f"{{{METADATA_NS}}}types")
        for member in members:
            _sub_element(types, "members", member)
        _sub_element(types, "name", metadata_type)
        _sub_element(unpackaged, "version", self._api_version)

        result = self._soap("retrieve", retrieve)
        return _find_text(result, "id")

    def _check_retrieve(self, process_id: str) -> bytes | None:
        """
        Get zip archive if retrieve completed, or `None` if still pending.
        """
        check = ET.Element(f"{{{METADATA_NS}}}checkRetrieveStatus")
        _sub_element(check, "asyncProcessId", process_id)
        _sub_element(check, "includeZip", "true")

        result = self._soap("checkRetrieveStatus", check)

        if _find_text(result, "done") != "true":
            return None

        status = _find_text(result, "status")
        if status != "Succeeded":
            message = result.findtext(f"{{{METADATA_NS}}}errorMessage")
            raise RetrieveError(
                f"Retrieve {process_id} finished with status {status}: {message}"
            )

        return base64.b64decode(_find_text(result, "zipFile"))

    def _soap(self, action: str, body: ET.Element) -> ET.Element:
        """
        Invoke a Metadata API operation and return its `result` element.
        """
        envelope = ET.Element(f"{{{SOAP_NS}}}Envelope")
        header = ET.SubElement(envelope, f"{{{SOAP_NS}}}Header")
        session_header = ET.SubElement(
            header, f"{{{METADATA_NS}}}SessionHeader"
        )
        _sub_element(session_header, "sessionId", self._access_token)
        ET.SubElement(envelope, f"{{{SOAP_NS}}}Body").append(body)

        response = self._http.post(
            self._metadata_url,
            data=ET.tostring(envelope, encoding="utf-8", xml_declaration=True),
            headers={
                "Content-Type": "text/xml; charset=UTF-8",
                "SOAPAction": action,
            },
            timeout=self._timeout,
        )

        try:
            root = ET.fromstring(response.content)
        except ET.ParseError:
            root = None

        if not response.ok or root is None:
            fault = (
                root.findtext(".//faultstring") if root is not None else None
            )
            message = fault or response.reason
            self._logger.error(
                f"Metadata API '{action}' failed: status={response.status_code}, reason={message}"
            )
            raise ApiError(message, response.status_code)

        result = root.find(f".//{{{METADATA_NS}}}result")
        if result is None:
            raise ApiError(f"Metadata API '{action}' returned no result")

        return result


def _sub_element(parent: ET.Element, tag: str, text: str) -> ET.Element:
    element = ET.SubElement(parent, f"{{{METADATA_NS}}}{tag}")
    element.text = text
    return element


def _find_text(element: ET.Element, tag: str) -> str:
    text = element.findtext(f"{{{METADATA_NS}}}{tag}")
    if text is None:
        raise ApiError(f"Metadata API response missing '{tag}'")
    return text


def _strip_attributes(record: dict[str, Any]) -> dict[str, Any]:
    """
    Remove type/url info from a record and any nested records.
    """
    return {
        k: _strip_attributes(v) if isinstance(v, dict) else v
        for k, v in record.items()
        if k != "attributes"
    }


def _get_error_message(response: requests.Response) -> str:
    """
    Extract message from an error response, which is normally a list of
    errors with `message` and `errorCode` fields.
    """
    try:
        body = response.json()
    except ValueError:
        return response.reason

    if isinstance(body, list) and len(body) and isinstance(body[0], dict):
        error = body[0]
        return f"{error.get('errorCode')}: {error.get('message')}"

    return response.reason
