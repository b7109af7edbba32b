# -*- coding: utf-8 -*-
"""
    persistence.py: save/destroy primitives used by the mutation pipeline

Writes are flushed, the commit (or rollback) happens at the request boundary
(see resource.http_method_decorator).
"""
from sqlalchemy import inspect as sqla_inspect
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import modelapi
from .config import is_debug
from .errors import HIDDEN_LOG


class Persistence:
    """
    Persistence collaborator interface
    """

    def save(self, obj) -> bool:  # pragma: no cover
        raise NotImplementedError

    def destroy(self, obj) -> bool:  # pragma: no cover
        """
        :return: True if the removal of `obj` has been confirmed
        """
        raise NotImplementedError

    def errors(self, obj) -> list:
        """
        :return: error entries explaining why the last save/destroy of `obj` failed
        """
        return []


class SessionPersistence(Persistence):
    """
    Persistence on the Flask-SQLAlchemy session
    """

    def __init__(self, session=None) -> None:
        self._session = session
        self._errors = {}

    @property
    def session(self):
        return self._session if self._session is not None else modelapi.DB.session

    def save(self, obj) -> bool:
        self._errors.pop(id(obj), None)
        try:
            self.session.add(obj)
            self.session.flush()
        except SQLAlchemyError as exc:
            self._failed(obj, "save", exc)
            return False
        return True

    def destroy(self, obj) -> bool:
        self._errors.pop(id(obj), None)
        try:
            self.session.delete(obj)
            self.session.flush()
        except SQLAlchemyError as exc:
            self._failed(obj, "destroy", exc)
            return False
        state = sqla_inspect(obj)
        return state.deleted or state.was_deleted

    def rollback(self) -> None:
        self.session.rollback()

    def errors(self, obj) -> list:
        return list(self._errors.get(id(obj), []))

    def _failed(self, obj, operation, exc) -> None:
        self.rollback()
        modelapi.log.warning(f"Failed to {operation} {obj.__class__.__name__}: {exc}")
        if isinstance(exc, IntegrityError):
            detail = str(getattr(exc, "orig", exc)) if is_debug() else HIDDEN_LOG
            self._errors[id(obj)] = [{"error": "Integrity error", "message": f"The {operation} conflicts with existing data {detail}"}]
