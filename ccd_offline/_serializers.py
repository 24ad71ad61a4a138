import base64
import json
import pickle
import typing as tp

import httpx

from ._utils import clone_request, clone_response

KNOWN_RESPONSE_EXTENSIONS = ("http_version", "reason_phrase")

__all__ = ("PickleSerializer", "JSONSerializer", "BaseSerializer", "StoredPair")

StoredPair = tp.Tuple[httpx.Response, httpx.Request]


class BaseSerializer:
    def dumps(self, response: httpx.Response, request: httpx.Request) -> tp.Union[str, bytes]:
        raise NotImplementedError()

    def loads(self, data: tp.Union[str, bytes]) -> StoredPair:
        raise NotImplementedError()

    @property
    def is_binary(self) -> bool:
        raise NotImplementedError()


class PickleSerializer(BaseSerializer):
    """
    A simple pickle-based serializer.
    """

    def dumps(self, response: httpx.Response, request: httpx.Request) -> tp.Union[str, bytes]:
        """
        Dumps the HTTP response and its HTTP request.

        :param response: An HTTP response, already read
        :type response: httpx.Response
        :param request: An HTTP request
        :type request: httpx.Request
        :return: Serialized response
        :rtype: tp.Union[str, bytes]
        """
        return pickle.dumps(
            (
                _response_to_dict(response, encode_content=False),
                _request_to_dict(request),
            )
        )

    def loads(self, data: tp.Union[str, bytes]) -> StoredPair:
        """
        Loads the HTTP response and its HTTP request from serialized data.

        :param data: Serialized data
        :type data: tp.Union[str, bytes]
        :return: HTTP response and its HTTP request
        :rtype: StoredPair
        """
        assert isinstance(data, bytes)
        response_dict, request_dict = pickle.loads(data)
        return _response_from_dict(response_dict, decode_content=False), _request_from_dict(request_dict)

    @property
    def is_binary(self) -> bool:  # pragma: no cover
        return True


class JSONSerializer(BaseSerializer):
    """A simple json-based serializer."""

    def dumps(self, response: httpx.Response, request: httpx.Request) -> tp.Union[str, bytes]:
        full_json = {
            "response": _response_to_dict(response, encode_content=True),
            "request": _request_to_dict(request),
        }
        return json.dumps(full_json, indent=4)

    def loads(self, data: tp.Union[str, bytes]) -> StoredPair:
        full_json = json.loads(data)
        return (
            _response_from_dict(full_json["response"], decode_content=True),
            _request_from_dict(full_json["request"]),
        )

    @property
    def is_binary(self) -> bool:
        return False


def _response_to_dict(response: httpx.Response, encode_content: bool) -> tp.Dict[str, tp.Any]:
    clone = clone_response(response)
    return {
        "status": clone.status_code,
        "headers": [[key, value] for key, value in clone.headers.multi_items()],
        "content": base64.b64encode(clone.content).decode("ascii") if encode_content else clone.content,
        "extensions": {
            key: value.decode("ascii") if isinstance(value, bytes) else value
            for key, value in response.extensions.items()
            if key in KNOWN_RESPONSE_EXTENSIONS
        },
    }


def _request_to_dict(request: httpx.Request) -> tp.Dict[str, tp.Any]:
    clone = clone_request(request)
    return {
        "method": clone.method,
        "url": str(clone.url),
        "headers": [[key, value] for key, value in clone.headers.multi_items()],
    }


def _response_from_dict(data: tp.Dict[str, tp.Any], decode_content: bool) -> httpx.Response:
    content = base64.b64decode(data["content"]) if decode_content else data["content"]
    return httpx.Response(
        status_code=data["status"],
        headers=[(key, value) for key, value in data["headers"]],
        content=content,
        extensions={
            key: value.encode("ascii") if isinstance(value, str) else value
            for key, value in data.get("extensions", {}).items()
        },
    )


def _request_from_dict(data: tp.Dict[str, tp.Any]) -> httpx.Request:
    return httpx.Request(
        method=data["method"],
        url=data["url"],
        headers=[(key, value) for key, value in data["headers"]],
    )
