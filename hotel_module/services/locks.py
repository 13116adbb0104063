"""
房间级互斥锁
组预订、入住、退房、删除房间都是"先检查再写入"，同一房间的这类操作必须串行，
否则两个并发请求可能同时通过可用性检查
"""
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Tuple
import logging
import threading

logger = logging.getLogger(__name__)


class RoomLockRegistry:
    """
    按 (tenant_id, room_id) 维护的进程内锁表

    多个房间按 id 升序加锁，避免两组预订交叉持锁导致死锁。
    锁只在单个进程内有效：多进程部署时检查与写入之间没有行锁
    (SELECT ... FOR UPDATE)，需要以单进程方式运行本模块。
    """

    def __init__(self):
        self._locks: Dict[Tuple[str, int], threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, tenant_id: str, room_id: int) -> threading.Lock:
        key = (tenant_id, room_id)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, tenant_id: str, room_ids: Iterable[int]) -> Iterator[List[int]]:
        """持有一组房间的锁，退出时逆序释放"""
        ordered = sorted({rid for rid in room_ids if rid is not None})
        acquired: List[threading.Lock] = []
        try:
            for room_id in ordered:
                lock = self._lock_for(tenant_id, room_id)
                lock.acquire()
                acquired.append(lock)
            logger.debug(f"Holding room locks {ordered} for tenant {tenant_id}")
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()


# 全局锁表
room_locks = RoomLockRegistry()
