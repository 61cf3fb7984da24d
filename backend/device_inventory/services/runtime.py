"""Process-wide discovery components shared by the API, the worker and the CLI."""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession

from device_inventory.config import DiscoveryConfig, settings
from device_inventory.services.cache import DeviceCache
from device_inventory.services.devices import DeviceManager
from device_inventory.services.os_detect import OsFingerprintMatcher, OsRuleCorpus
from device_inventory.services.probe import NetworkProbe
from device_inventory.services.scheduler import DiscoveryScheduler, scheduler
from device_inventory.services.snmp import PysnmpClient, SnmpClient


class DiscoveryRuntime:
    """Long-lived pieces: SNMP engine, rule corpus, per-host locks and device cache.

    A :class:`DeviceManager` is cheap and bound to one session; build one per
    request or job with :meth:`manager`.
    """

    def __init__(
        self,
        config: DiscoveryConfig,
        snmp: SnmpClient,
        corpus: OsRuleCorpus,
        probe: NetworkProbe | None = None,
        cache: DeviceCache | None = None,
        scheduler: DiscoveryScheduler | None = None,
    ):
        self.config = config
        self.snmp = snmp
        self.corpus = corpus
        self.probe = probe or NetworkProbe(config, snmp)
        self.matcher = OsFingerprintMatcher(corpus, snmp)
        self.cache = cache if cache is not None else DeviceCache()
        self.scheduler = scheduler

    def manager(self, session: AsyncSession) -> DeviceManager:
        return DeviceManager(
            session, self.config, self.snmp, self.probe, self.matcher, self.cache, self.scheduler,
        )


@lru_cache(maxsize=1)
def get_runtime() -> DiscoveryRuntime:
    return DiscoveryRuntime(
        config=settings.discovery_config(),
        snmp=PysnmpClient(),
        corpus=OsRuleCorpus.from_yaml(settings.os_definitions_path),
        cache=DeviceCache(settings.device_cache_size),
        scheduler=scheduler,
    )
