import logging
from abc import ABC
from http import HTTPStatus
from typing import Any, Callable, NoReturn, Protocol, Sequence
from urllib.parse import urljoin, urlparse

from prometheus_client import Histogram
from requests import JSONDecodeError, RequestException, Response

from posmoni.providers.exceptions import NoHostsProvided, NotOkResponse, ProtocolError, TransportError
from posmoni.providers.retry import RetryingTransport

logger = logging.getLogger(__name__)

JSON_HEADERS = {'Content-Type': 'application/json'}


class ReturnValueValidator(Protocol):
    def __call__(self, data: Any, meta: dict, *, endpoint: str) -> None | NoReturn: ...


def data_is_any(data: Any, meta: dict, *, endpoint: str):
    pass


def data_is_dict(data: Any, meta: dict, *, endpoint: str):
    if not isinstance(data, dict):
        raise ProtocolError(f"Expected mapping response from {endpoint}")


def data_is_list(data: Any, meta: dict, *, endpoint: str):
    if not isinstance(data, list):
        raise ProtocolError(f"Expected list response from {endpoint}")


class HTTPProvider(ABC):
    """
    Base HTTP Provider with metrics and retry strategy integrated inside.
    Every request goes through RetryingTransport.
    """

    PROMETHEUS_HISTOGRAM: Histogram

    PROVIDER_EXCEPTION = NotOkResponse

    def __init__(
        self,
        hosts: Sequence[str] | None,
        request_timeout: float,
        retry_duration: float,
    ):
        self.hosts = list(hosts or [])
        self.request_timeout = request_timeout
        self.retry_duration = retry_duration
        self.transport = RetryingTransport(retry_duration, request_timeout=request_timeout)

    @staticmethod
    def _urljoin(host, url):
        if not host.endswith('/'):
            host += '/'
        return urljoin(host, url)

    def _get(
        self,
        endpoint: str,
        path_params: Sequence[str | int] | None = None,
        query_params: dict | None = None,
        force_raise: Callable[..., Exception | None] = lambda _: None,
        retval_validator: ReturnValueValidator = data_is_any,
    ) -> tuple[Any, dict]:
        """
        Get request with fallbacks over configured hosts
        Returns (data, meta) or raises exception

        force_raise - function that returns an Exception if it should be thrown immediately.
        """
        if not self.hosts:
            raise NoHostsProvided(f"No hosts provided for {self.__class__.__name__}")

        errors: list[Exception] = []

        for host in self.hosts:
            try:
                return self._get_without_fallbacks(
                    host,
                    endpoint,
                    path_params,
                    query_params,
                    retval_validator=retval_validator,
                )
            except (TransportError, ProtocolError) as e:
                errors.append(e)

                # Check if exception should be raised immediately
                if to_force_raise := force_raise(errors):
                    raise to_force_raise from e

                logger.warning(
                    {
                        'msg': f'[{self.__class__.__name__}] Host [{urlparse(host).netloc}] responded with error',
                        'error': str(e),
                        'provider': urlparse(host).netloc,
                    }
                )

        # Raise error from last provider.
        raise errors[-1]

    def _get_without_fallbacks(
        self,
        host: str,
        endpoint: str,
        path_params: Sequence[str | int] | None = None,
        query_params: dict | None = None,
        retval_validator: ReturnValueValidator = data_is_any,
    ) -> tuple[Any, dict]:
        """
        Simple get request without fallbacks
        Returns (data, meta) or raises an exception
        """
        complete_endpoint = endpoint.format(*path_params) if path_params else endpoint

        response = self._request(host, endpoint, complete_endpoint, 'GET', params=query_params)

        if response.status_code != HTTPStatus.OK:
            response_fail_msg = (
                f'Response from {complete_endpoint} [{response.status_code}]'
                f' with text: "{str(response.text)}" returned.'
            )
            logger.debug({'msg': response_fail_msg})
            raise self.PROVIDER_EXCEPTION(response_fail_msg, status=response.status_code, text=response.text)

        json_response = self._decode(response, complete_endpoint)

        try:
            data = json_response["data"]
            del json_response["data"]
            meta = json_response
        except (KeyError, TypeError) as error:
            raise self.PROVIDER_EXCEPTION(
                f'No data field in response from {complete_endpoint}', status=response.status_code, text=response.text
            ) from error

        retval_validator(data, meta, endpoint=endpoint)
        return data, meta

    def _get_status_code(self, host: str, endpoint: str) -> int:
        """Get request where only the status code of the response matters"""
        response = self._request(host, endpoint, endpoint, 'GET')
        response.close()
        return response.status_code

    def _post_without_fallbacks(self, host: str, body: str, retry: bool = True) -> Any:
        """Post encoded json body to the host root. Returns decoded json body or raises an exception"""
        response = self._request(host, '', host, 'POST', data=body, headers=JSON_HEADERS, retry=retry)

        if response.status_code != HTTPStatus.OK:
            response_fail_msg = f'Response from {urlparse(host).netloc} [{response.status_code}] returned.'
            logger.debug({'msg': response_fail_msg, 'text': response.text})
            raise self.PROVIDER_EXCEPTION(response_fail_msg, status=response.status_code, text=response.text)

        return self._decode(response, urlparse(host).netloc)

    def _request(self, host: str, endpoint: str, complete_endpoint: str, method: str, **kwargs) -> Response:
        url = self._urljoin(host, complete_endpoint) if endpoint else host

        with self.PROMETHEUS_HISTOGRAM.time() as t:
            try:
                response = self.transport.send(method, url, **kwargs)
            except (TransportError, RequestException) as error:
                logger.error({'msg': str(error), 'provider': urlparse(host).netloc})
                t.labels(
                    endpoint=endpoint,
                    code=0,
                    domain=urlparse(host).netloc,
                )
                if isinstance(error, TransportError):
                    raise
                # Malformed url or similar, retrying does not help
                raise TransportError(str(error), reason='invalid request') from error

            t.labels(
                endpoint=endpoint,
                code=response.status_code,
                domain=urlparse(host).netloc,
            )

        return response

    def _decode(self, response: Response, complete_endpoint: str) -> Any:
        try:
            return response.json()
        except JSONDecodeError as error:
            response_fail_msg = (
                f'Failed to decode JSON response from {complete_endpoint} with text: "{str(response.text)}"'
            )
            logger.debug({'msg': response_fail_msg})
            raise self.PROVIDER_EXCEPTION(
                response_fail_msg, status=response.status_code, text='JSON decode error.'
            ) from error

    def get_all_providers(self) -> list[str]:
        return self.hosts
