"""Room error taxonomy; each error carries the HTTP status it maps to."""

from __future__ import annotations


class RoomPolicyError(RuntimeError):
	status_code = 400

	def __init__(self, code: str, *, status_code: int | None = None, message: str | None = None) -> None:
		super().__init__(message or code)
		self.code = code
		if status_code is not None:
			self.status_code = status_code
		self.detail = message or code


class NotFoundError(RoomPolicyError):
	status_code = 404


class UnauthorizedError(RoomPolicyError):
	status_code = 403


class InvalidArgumentError(RoomPolicyError):
	status_code = 400


class ConflictError(RoomPolicyError):
	status_code = 409


class DuplicateCodeError(ConflictError):
	def __init__(self, code: str) -> None:
		super().__init__("duplicate_code", message=f"Room code {code} already exists")
		self.room_code = code
