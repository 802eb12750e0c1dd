"""
Async utilities for devdock: worker loop, thread pool and subprocess helpers
"""

import asyncio
import codecs
import functools
import logging
import os
import select
import subprocess
import sys
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Any, List, Optional, Set, Tuple, Union

# Set up logging
logger = logging.getLogger(__name__)

# Global thread pool executor for blocking subprocess and HTTP work
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="async_worker")

# Size of a single raw read from a streaming subprocess
_READ_SIZE = 4096


async def run_subprocess_async(
    cmd,
    shell: bool = False,
    capture_output: bool = True,
    text: bool = True,
    encoding: str = "utf-8",
    errors: str = "replace",
    cwd: Optional[str] = None,
    **kwargs,
) -> subprocess.CompletedProcess:
    """
    Run subprocess command asynchronously using thread pool
    """

    def run_subprocess():
        return subprocess.run(
            cmd,
            shell=shell,
            capture_output=capture_output,
            text=text,
            encoding=encoding,
            errors=errors,
            cwd=cwd,
            **kwargs,
        )

    return await run_in_executor(run_subprocess)


def _stream_process(
    cmd: Union[List[str], str],
    shell: bool,
    cwd: Optional[str],
    encoding: str,
    errors: str,
    output_callback: Optional[Callable[[str], None]],
) -> Tuple[int, str]:
    """Spawn cmd and forward merged stdout/stderr chunks as they arrive"""
    env = os.environ.copy()
    env["PYTHONUNBUFFERED"] = "1"

    try:
        process = subprocess.Popen(
            cmd,
            shell=shell,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            cwd=cwd,
            bufsize=0,
            env=env,
        )
    except (OSError, ValueError) as e:
        logger.error("Failed to spawn %s: %s", cmd, e)
        error_msg = f"Error: {e}\n"
        if output_callback:
            output_callback(error_msg)
        return 1, error_msg

    decoder = codecs.getincrementaldecoder(encoding)(errors=errors)
    chunks: List[str] = []

    def emit(data: bytes, final: bool = False):
        text = decoder.decode(data, final=final)
        if text:
            chunks.append(text)
            if output_callback:
                output_callback(text)

    fd = process.stdout.fileno()
    try:
        while True:
            if sys.platform == "win32":
                data = process.stdout.read(_READ_SIZE)
                if not data:
                    break
                emit(data)
                continue
            # Completion is the shell's exit, not EOF: background children
            # inherit the pipe and may hold it open indefinitely
            exited = process.poll() is not None
            ready, _, _ = select.select([fd], [], [], 0 if exited else 0.1)
            if not ready:
                if exited:
                    break
                continue
            data = os.read(fd, _READ_SIZE)
            if not data:
                break
            emit(data)
        emit(b"", final=True)
    finally:
        process.stdout.close()

    return_code = process.wait()
    return return_code, "".join(chunks)


async def run_subprocess_streaming_async(
    cmd,
    shell: bool = False,
    encoding: str = "utf-8",
    errors: str = "replace",
    cwd: Optional[str] = None,
    output_callback: Optional[Callable[[str], None]] = None,
) -> Tuple[int, str]:
    """
    Run subprocess with streaming output asynchronously using thread pool
    Returns (return_code, full_output); spawn failures return code 1
    """
    return await run_in_executor(
        _stream_process, cmd, shell, cwd, encoding, errors, output_callback
    )


async def run_in_executor(func: Callable, *args, **kwargs) -> Any:
    """
    Run a synchronous function in the thread pool executor

    Raises:
        RuntimeError: If no event loop is running
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError as e:
        logger.error("No event loop available for run_in_executor")
        raise RuntimeError("No async event loop available") from e
    bound_func = functools.partial(func, *args, **kwargs)
    return await loop.run_in_executor(_executor, bound_func)


class ImprovedAsyncTaskManager:
    """
    Owns the background event loop that every action runs on
    - Better event loop management
    - Proper task lifecycle tracking
    - Explicit sync bridge for callers on other threads
    """

    def __init__(self):
        self._tasks: Set[Future] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._shutdown_requested = False
        self._loop_ready = threading.Event()

    @property
    def loop(self) -> Optional[asyncio.AbstractEventLoop]:
        return self._loop

    def setup_event_loop(self):
        """Setup event loop in background thread"""
        if self._shutdown_requested or self._thread is not None:
            return

        def run_event_loop():
            """Run the event loop in a background thread"""
            try:
                self._loop = asyncio.new_event_loop()
                asyncio.set_event_loop(self._loop)

                def handle_exception(loop, context):
                    exception = context.get("exception")
                    task = context.get("task")

                    if exception:
                        if isinstance(exception, asyncio.CancelledError):
                            logger.debug(
                                "Task cancelled: %s",
                                task.get_name() if task else "unknown",
                            )
                        else:
                            logger.error(
                                "Async task exception: %s",
                                exception,
                                exc_info=exception,
                            )
                    else:
                        logger.error(
                            "Async task error: %s", context.get("message", "Unknown")
                        )

                self._loop.set_exception_handler(handle_exception)

                self._loop_ready.set()

                logger.info("Async event loop thread started")
                self._loop.run_forever()

            except Exception:
                logger.exception("Critical error in event loop thread")
                self._loop_ready.set()  # Signal even on error to prevent deadlock
            finally:
                if self._loop and not self._loop.is_closed():
                    pending = asyncio.all_tasks(self._loop)
                    if pending:
                        logger.info("Cancelling %d pending tasks", len(pending))
                        for task in pending:
                            task.cancel()
                        self._loop.run_until_complete(
                            asyncio.gather(*pending, return_exceptions=True)
                        )
                    self._loop.close()

                logger.info("Async event loop thread ended")

        self._thread = threading.Thread(
            target=run_event_loop, daemon=True, name="AsyncEventLoop"
        )
        self._thread.start()

        if not self._loop_ready.wait(timeout=5.0):
            raise RuntimeError("Failed to start async event loop within timeout")

        if self._loop is None:
            raise RuntimeError("Failed to create async event loop")

        logger.info("Async event loop setup complete")

    def run_task(
        self, coro, callback: Optional[Callable] = None, task_name: Optional[str] = None
    ) -> Future:
        """
        Run an async task in the background thread

        Args:
            coro: Coroutine to run
            callback: Optional callback function called with (result, error)
            task_name: Optional name for the task (for debugging)

        Returns:
            concurrent.futures.Future representing the task

        Raises:
            RuntimeError: If task manager is shutting down or not set up
        """
        if self._shutdown_requested:
            coro.close()
            raise RuntimeError("Task manager is shutting down")

        if not self._loop or self._loop.is_closed():
            self.setup_event_loop()

        async def wrapped_coro():
            try:
                return await coro
            except asyncio.CancelledError:
                logger.debug("Task cancelled: %s", task_name or "unnamed")
                raise
            except Exception as e:
                logger.exception("Error in task %s: %s", task_name or "unnamed", e)
                raise

        future = asyncio.run_coroutine_threadsafe(wrapped_coro(), self._loop)
        self._tasks.add(future)

        def cleanup_and_callback(completed_future):
            """Handle task completion with proper cleanup"""
            self._tasks.discard(completed_future)

            if callback:
                if completed_future.cancelled():
                    callback(None, asyncio.CancelledError("Task was cancelled"))
                elif completed_future.exception() is not None:
                    callback(None, completed_future.exception())
                else:
                    callback(completed_future.result(), None)

        future.add_done_callback(cleanup_and_callback)
        return future

    def run_sync(self, coro, timeout: Optional[float] = None) -> Any:
        """
        Block the calling thread until coro finishes on the background loop.

        Must not be called from the loop thread itself.
        """
        if self._thread is not None and threading.current_thread() is self._thread:
            coro.close()
            raise RuntimeError("run_sync cannot be called from the event loop thread")
        return self.run_task(coro).result(timeout=timeout)

    def cancel_all_tasks(self, timeout: float = 5.0):
        """Cancel all running tasks with timeout"""
        if not self._tasks:
            return

        logger.info("Cancelling %d tasks", len(self._tasks))

        cancelled_tasks = []
        for task in self._tasks.copy():
            if not task.done():
                task.cancel()
                cancelled_tasks.append(task)

        if cancelled_tasks:
            start_time = time.time()
            while cancelled_tasks and (time.time() - start_time) < timeout:
                cancelled_tasks = [task for task in cancelled_tasks if not task.done()]
                if cancelled_tasks:
                    time.sleep(0.1)

            if cancelled_tasks:
                logger.warning(
                    "%d tasks did not cancel within timeout", len(cancelled_tasks)
                )

        self._tasks.clear()

    def get_task_count(self) -> int:
        """Get current number of tracked tasks"""
        completed = {task for task in self._tasks if task.done()}
        self._tasks -= completed
        return len(self._tasks)

    def shutdown(self, timeout: float = 5.0):
        """
        Shutdown the task manager with proper cleanup and timeout
        """
        logger.info("Shutting down async task manager")
        self._shutdown_requested = True

        self.cancel_all_tasks(timeout=timeout / 2)

        if self._loop and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._loop.stop)

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)

            if self._thread.is_alive():
                logger.warning(
                    "Event loop thread did not shut down cleanly within %fs", timeout
                )

        self._loop = None
        self._thread = None
        self._loop_ready.clear()


# Global task manager instance
task_manager = ImprovedAsyncTaskManager()


def shutdown_all(timeout: float = 5.0):
    """Shutdown all async resources with timeout"""
    logger.info("Shutting down all async resources")
    task_manager.shutdown(timeout=timeout)
    _executor.shutdown(wait=False)
