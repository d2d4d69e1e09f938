"""Module for exceptions caused by the execution provider"""
from posmoni.providers.exceptions import NotOkResponse, ProtocolError


class ExecutionClientError(NotOkResponse):
    pass


class Eth1Error(ProtocolError):
    """Error object of a JSON-RPC response"""
    code: int
    message: str

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f'Error {code} ({message})')
