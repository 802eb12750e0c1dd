"""
Tests for async utilities - background loop management and subprocess execution
"""

import asyncio
import threading
import time
from unittest.mock import Mock, patch

import pytest

from devdock.utils.async_utils import (
    ImprovedAsyncTaskManager,
    run_in_executor,
    run_subprocess_async,
    run_subprocess_streaming_async,
)


class TestRunSubprocessAsync:
    """Test cases for run_subprocess_async"""

    @pytest.mark.asyncio
    async def test_run_simple_command(self):
        """Test running a simple command"""
        result = await run_subprocess_async(["echo", "hello"])

        assert result.returncode == 0
        assert "hello" in result.stdout

    @pytest.mark.asyncio
    async def test_run_command_with_cwd(self, tmp_path):
        """Test running command with working directory"""
        result = await run_subprocess_async("pwd", shell=True, cwd=str(tmp_path))

        assert result.returncode == 0
        assert tmp_path.name in result.stdout

    @pytest.mark.asyncio
    async def test_nonzero_exit(self):
        result = await run_subprocess_async(["bash", "-c", "exit 4"])

        assert result.returncode == 4


class TestRunSubprocessStreamingAsync:
    """Test cases for run_subprocess_streaming_async"""

    @pytest.mark.asyncio
    async def test_streams_merged_output(self):
        """Test stdout and stderr both reach the callback"""
        chunks = []

        return_code, output = await run_subprocess_streaming_async(
            "echo out; echo err >&2; exit 2", shell=True, output_callback=chunks.append
        )

        assert return_code == 2
        assert "out" in output
        assert "err" in output
        assert "".join(chunks) == output

    @pytest.mark.asyncio
    async def test_output_without_trailing_newline(self):
        return_code, output = await run_subprocess_streaming_async(
            ["bash", "-c", "printf 'Password:'"]
        )

        assert return_code == 0
        assert output == "Password:"

    @pytest.mark.asyncio
    async def test_multibyte_characters_survive_chunking(self):
        return_code, output = await run_subprocess_streaming_async(
            ["bash", "-c", "printf '\\xc3\\xa9t\\xc3\\xa9'"]
        )

        assert output == "été"

    @pytest.mark.asyncio
    async def test_background_child_does_not_hold_completion(self):
        """Test a backgrounded child keeping the pipe open does not block"""
        start = time.time()
        return_code, output = await run_subprocess_streaming_async(
            "sleep 5 & echo launched", shell=True
        )

        assert return_code == 0
        assert output == "launched\n"
        assert time.time() - start < 3

    @pytest.mark.asyncio
    async def test_spawn_failure(self):
        """Test spawn errors come back as exit code 1"""
        chunks = []
        with patch("subprocess.Popen", side_effect=OSError("Command not found")):
            return_code, output = await run_subprocess_streaming_async(
                ["nonexistent_command"], output_callback=chunks.append
            )

        assert return_code == 1
        assert output == "Error: Command not found\n"
        assert chunks == [output]


class TestRunInExecutor:
    """Test cases for run_in_executor"""

    @pytest.mark.asyncio
    async def test_run_with_args_and_kwargs(self):
        def sync_func(a, b=10):
            return a * b

        assert await run_in_executor(sync_func, 5, b=20) == 100

    @pytest.mark.asyncio
    async def test_exception_propagation(self):
        def failing():
            raise ValueError("bad input")

        with pytest.raises(ValueError, match="bad input"):
            await run_in_executor(failing)

    def test_no_event_loop(self):
        coro = run_in_executor(lambda: None)
        with pytest.raises(RuntimeError, match="No async event loop"):
            coro.send(None)


class TestImprovedAsyncTaskManager:
    """Test cases for the background loop"""

    def setup_method(self):
        self.task_manager = ImprovedAsyncTaskManager()

    def teardown_method(self):
        self.task_manager.shutdown(timeout=1.0)

    def test_initialization(self):
        assert self.task_manager.loop is None
        assert self.task_manager.get_task_count() == 0

    def test_setup_event_loop_twice(self):
        self.task_manager.setup_event_loop()
        first_loop = self.task_manager.loop

        self.task_manager.setup_event_loop()

        assert self.task_manager.loop is first_loop

    def test_run_task_sets_up_loop(self):
        async def simple_task():
            return threading.current_thread().name

        future = self.task_manager.run_task(simple_task())

        assert future.result(timeout=5) == "AsyncEventLoop"

    def test_run_task_with_callback(self):
        callback = Mock()
        done = threading.Event()
        callback.side_effect = lambda result, error: done.set()

        async def task():
            return "ok"

        self.task_manager.run_task(task(), callback=callback, task_name="test_task")

        assert done.wait(5)
        callback.assert_called_once_with("ok", None)

    def test_run_task_with_error(self):
        errors = []
        done = threading.Event()

        def callback(result, error):
            errors.append(error)
            done.set()

        async def failing_task():
            raise ValueError("task failed")

        future = self.task_manager.run_task(failing_task(), callback=callback)

        with pytest.raises(ValueError):
            future.result(timeout=5)
        assert done.wait(5)
        assert isinstance(errors[0], ValueError)

    def test_run_sync(self):
        async def add(a, b):
            await asyncio.sleep(0)
            return a + b

        assert self.task_manager.run_sync(add(2, 3), timeout=5) == 5

    def test_cancel_all_tasks(self):
        async def long_task():
            await asyncio.sleep(30)

        future = self.task_manager.run_task(long_task())
        time.sleep(0.05)

        self.task_manager.cancel_all_tasks(timeout=2)

        assert future.cancelled()
        assert self.task_manager.get_task_count() == 0

    def test_run_task_after_shutdown(self):
        self.task_manager.setup_event_loop()
        self.task_manager.shutdown(timeout=1.0)

        async def task():
            return 1

        with pytest.raises(RuntimeError, match="shutting down"):
            self.task_manager.run_task(task())
