"""Provider — the host-facing API for applying, refreshing and importing instances."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any

from . import lifecycle
from .clock import Clock
from .config import ProviderMeta
from .context import Context
from .datasource import DataSourceType
from .errors import PartialApplyError
from .lifecycle import Instance, Plan
from .resource import Registry, ResourceType, default_registry
from .state import InstanceState, MemoryStateStore, StateStore

logger = logging.getLogger(__name__)


class Provider[M: ProviderMeta]:
    """Dispatches host requests to registered resource types.

    Every call builds a fresh Context from the shared meta. Persisted state
    goes through the state store, one transaction per call.
    """

    def __init__(
        self,
        meta: M,
        *,
        registry: Registry | None = None,
        store: StateStore | None = None,
        clock: Clock | None = None,
        dry_run: bool | None = None,
    ) -> None:
        self.meta = meta
        self.registry = registry if registry is not None else default_registry()
        self.store = store if store is not None else MemoryStateStore()
        self.clock = clock
        self.dry_run = meta.config.dry_run if dry_run is None else dry_run
        self._cancel = threading.Event()
        self._types: dict[str, ResourceType] = {}
        self._data_sources: dict[str, DataSourceType] = {}

    def __repr__(self) -> str:
        return f"Provider(types={len(self.registry)}, dry_run={self.dry_run})"

    def context(self) -> Context[M]:
        return Context(self.meta, dry_run=self.dry_run, clock=self.clock, cancel_event=self._cancel)

    def cancel(self) -> None:
        """Cancel every in-flight operation; waiters and retries stop at their next check."""
        logger.info("Cancelling in-flight operations")
        self._cancel.set()

    def resource_type(self, name: str) -> ResourceType:
        if name not in self._types:
            self._types[name] = self.registry.lookup(name)()
        return self._types[name]

    def data_source(self, name: str) -> DataSourceType:
        if name not in self._data_sources:
            self._data_sources[name] = self.registry.lookup_data_source(name)()
        return self._data_sources[name]

    def _prior(self, store: StateStore, rtype: ResourceType, name: str, id: str | None) -> Instance:
        if not id:
            return Instance(name)
        saved = store.get(name, id)
        if saved is None:
            return Instance(name, id)
        return saved.to_instance(rtype)

    def _record(
        self, store: StateStore, rtype: ResourceType, prior: Instance, result: Instance
    ) -> InstanceState | None:
        if prior.id and prior.id != result.id:
            store.delete(prior.type_name, prior.id)
        if not result.id:
            return None
        state = InstanceState.from_instance(rtype, result)
        store.put(state)
        return state

    def apply(
        self, name: str, id: str | None, desired: Mapping[str, Any] | None
    ) -> InstanceState | None:
        """Reconcile one instance; returns its new state, or None once it is gone."""
        self.registry.freeze()
        rtype = self.resource_type(name)
        with self.store.transaction() as store:
            prior = self._prior(store, rtype, name, id)
            try:
                result = lifecycle.apply(self.context(), rtype, prior, desired)
            except PartialApplyError as exc:
                self._record(store, rtype, prior, exc.instance)
                raise exc.err
            if self.dry_run:
                return InstanceState.from_instance(rtype, result) if result.id else None
            return self._record(store, rtype, prior, result)

    def plan(self, name: str, id: str | None, desired: Mapping[str, Any] | None) -> Plan:
        self.registry.freeze()
        rtype = self.resource_type(name)
        prior = self._prior(self.store, rtype, name, id)
        return lifecycle.plan(self.context(), rtype, prior, desired)

    def refresh(
        self, name: str, id: str, state: InstanceState | None = None
    ) -> InstanceState | None:
        """Re-read one instance, recording drift; None when it no longer exists."""
        self.registry.freeze()
        rtype = self.resource_type(name)
        with self.store.transaction() as store:
            if state is not None:
                prior = state.to_instance(rtype)
            else:
                prior = self._prior(store, rtype, name, id)
            result = lifecycle.refresh(self.context(), rtype, prior)
            return self._record(store, rtype, prior, result)

    def read_data(self, name: str, args: Mapping[str, Any]) -> InstanceState:
        """Look up an existing remote object through a data source.

        Data sources are read afresh on every call; nothing is persisted.
        """
        self.registry.freeze()
        dtype = self.data_source(name)
        instance = lifecycle.read_data(self.context(), dtype, args)
        return InstanceState.from_instance(dtype, instance)

    def import_state(self, name: str, id_string: str) -> list[InstanceState]:
        self.registry.freeze()
        rtype = self.resource_type(name)
        with self.store.transaction() as store:
            instances = lifecycle.import_instance(self.context(), rtype, id_string)
            states = [InstanceState.from_instance(rtype, i) for i in instances]
            for state in states:
                store.put(state)
            return states
