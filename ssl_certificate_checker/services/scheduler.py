"""
探测调度服务
"""
import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Iterator, List, Optional
import logging

from ..exceptions import ProbeCancelled
from ..interfaces import ProberInterface
from ..models import DEFAULT_MAX_WORKERS, ProbeRequest, ProbeResult, Status


# 被取消的探测放入队列的标记，不对应任何结果
_ABANDONED = object()


class ProbeScheduler:
    """
    探测调度器

    请求被提交到有上限的线程池中，每个工作线程完成后向同一个队列放入
    恰好一项（结果或放弃标记），由单一消费者按完成顺序读取。
    """

    def __init__(self, prober: ProberInterface, max_workers: int = DEFAULT_MAX_WORKERS,
                 poll_interval: float = 0.1, drain_grace: float = 2.0):
        """
        初始化探测调度器

        Args:
            prober: 证书探测器
            max_workers: 同时进行的探测数量上限
            poll_interval: 等待完成事件时检查取消信号的间隔（秒）
            drain_grace: 取消后等待进行中探测返回的最长时间（秒）
        """
        if max_workers < 1:
            raise ValueError(f"max_workers 必须大于0: {max_workers}")

        self.prober = prober
        self.max_workers = max_workers
        self.poll_interval = poll_interval
        self.drain_grace = drain_grace
        self.logger = logging.getLogger(__name__)

        self._cancel_event = threading.Event()
        self._completions: "queue.Queue" = queue.Queue()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._futures: List[Future] = []
        self._outstanding = 0

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self):
        """请求取消，可在任意线程调用"""
        if not self._cancel_event.is_set():
            self.logger.info("收到取消请求，放弃未完成的探测")
        self._cancel_event.set()

    def run(self, requests: List[ProbeRequest]) -> Iterator[ProbeResult]:
        """
        并发探测所有请求，按完成顺序产出结果

        Args:
            requests: 探测请求列表

        Yields:
            ProbeResult: 每个完成的探测结果
        """
        if not requests:
            return

        self._start(requests)
        try:
            while self._outstanding and not self._cancel_event.is_set():
                try:
                    item = self._completions.get(timeout=self.poll_interval)
                except queue.Empty:
                    continue

                self._outstanding -= 1
                if item is not _ABANDONED:
                    yield item

            if self._cancel_event.is_set():
                yield from self.drain()
        finally:
            self._shutdown()

    def drain(self) -> Iterator[ProbeResult]:
        """
        取消后收集已经完成的结果

        未开始的探测被直接取消，进行中的连接被关闭；最多等待
        drain_grace 秒，不为未完成的探测伪造结果。

        Yields:
            ProbeResult: 取消前后已完成的探测结果
        """
        self._cancel_event.set()

        for future in self._futures:
            if future.cancel():
                self._outstanding -= 1
        self._futures = []
        self.prober.abort()

        deadline = time.monotonic() + self.drain_grace
        while self._outstanding > 0:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self.logger.warning(f"{self._outstanding} 个探测在取消后未返回，已放弃")
                break
            try:
                item = self._completions.get(timeout=min(remaining, self.poll_interval))
            except queue.Empty:
                continue

            self._outstanding -= 1
            if item is not _ABANDONED:
                yield item

        self._shutdown()

    def _start(self, requests: List[ProbeRequest]):
        workers = min(len(requests), self.max_workers)
        self.logger.debug(f"启动 {workers} 个工作线程处理 {len(requests)} 个探测请求")

        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="probe")
        self._outstanding = len(requests)
        self._futures = [self._executor.submit(self._work, request) for request in requests]

    def _shutdown(self):
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def _work(self, request: ProbeRequest):
        if self._cancel_event.is_set():
            self._completions.put(_ABANDONED)
            return

        try:
            item = self.prober.probe(request, cancel_event=self._cancel_event)
        except ProbeCancelled:
            self.logger.debug(f"探测 {request.environment}/{request.hostname} 已取消")
            item = _ABANDONED
        except Exception as e:
            self.logger.exception(f"探测 {request.environment}/{request.hostname} 时发生未预期的错误")
            item = ProbeResult(
                request=request,
                status=Status.CONNECTION_ERROR,
                error_detail=f"{type(e).__name__}: {e}"
            )

        self._completions.put(item)
