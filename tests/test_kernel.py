"""
Tests for KernelSession using an in-memory stand-in for jupyter_client.
"""

import queue

import pytest

from nbcards import CardIds, MessageAggregator
from nbcards.errors import KernelExecutionError, KernelUnavailableError
from nbcards.kernel import KernelSession


class FakeClient:
    """Blocking client that answers execute requests with scripted IOPub messages."""

    def __init__(self, manager):
        self.manager = manager
        self.executed = []
        self.iopub = queue.Queue()
        self.shell = queue.Queue()
        self.channels_started = False
        self._count = 0

    def start_channels(self):
        self.channels_started = True

    def stop_channels(self):
        self.channels_started = False

    def wait_for_ready(self, timeout=None):
        pass

    def _publish(self, msg_id, msg_type, content):
        self.iopub.put({
            "header": {"msg_type": msg_type, "msg_id": f"{msg_id}-{msg_type}"},
            "parent_header": {"msg_id": msg_id},
            "metadata": {},
            "content": content,
            "msg_type": msg_type,
        })

    def execute(self, code, silent=False, store_history=True, allow_stdin=None, stop_on_error=True):
        self._count += 1
        msg_id = f"req-{self._count}"
        self.executed.append((code, silent))
        self.shell.put({"parent_header": {"msg_id": msg_id}, "content": {"status": "ok"}})

        if self.manager.hang:
            return msg_id

        self._publish(msg_id, "status", {"execution_state": "busy"})
        if not silent:
            # Output of an unrelated request must be ignored
            self._publish("someone-else", "stream", {"name": "stdout", "text": "noise"})
            self._publish(msg_id, "execute_input", {"code": code, "execution_count": self._count})
            for msg_type, content in self.manager.responses:
                self._publish(msg_id, msg_type, content)
        self._publish(msg_id, "status", {"execution_state": "idle"})
        return msg_id

    def get_iopub_msg(self, timeout=None):
        return self.iopub.get_nowait()

    def get_shell_msg(self, timeout=None):
        return self.shell.get_nowait()


class FakeManager:
    instances = []

    def __init__(self, kernel_name="python3"):
        self.kernel_name = kernel_name
        self.started = False
        self.shut_down = False
        self.responses = []
        self.hang = False
        self.client = FakeClient(self)
        FakeManager.instances.append(self)

    def start_kernel(self):
        self.started = True

    def blocking_client(self):
        return self.client

    def shutdown_kernel(self, now=False):
        self.shut_down = True


class FailingManager(FakeManager):
    def start_kernel(self):
        raise RuntimeError("No such kernel named ir")


@pytest.fixture(autouse=True)
def clear_instances():
    FakeManager.instances = []
    yield
    FakeManager.instances = []


@pytest.fixture
def session():
    aggregator = MessageAggregator(ids=CardIds())
    session = KernelSession(aggregator, kernel_manager_factory=FakeManager)
    yield session
    session.shutdown()


class TestStartKernel:

    def test_start_once_per_flavor(self, session):
        session.start_kernel("python3")
        session.start_kernel("python3")
        assert len(FakeManager.instances) == 1
        assert FakeManager.instances[0].kernel_name == "python3"
        assert FakeManager.instances[0].client.channels_started

    def test_python_setup_is_silent(self, session):
        session.start_kernel("python3")
        executed = FakeManager.instances[0].client.executed
        assert executed == [("%matplotlib inline", True)]

    def test_python_changes_to_workspace(self, tmp_path):
        session = KernelSession(MessageAggregator(), kernel_manager_factory=FakeManager, workspace=tmp_path)
        session.start_kernel("python3")
        executed = FakeManager.instances[0].client.executed
        assert (f"%cd {tmp_path}", True) in executed
        session.shutdown()

    def test_r_has_no_setup(self, session):
        session.start_kernel("ir")
        assert FakeManager.instances[0].client.executed == []

    def test_start_failure(self):
        session = KernelSession(MessageAggregator(), kernel_manager_factory=FailingManager)
        with pytest.raises(KernelExecutionError):
            session.start_kernel("ir")
        assert session.flavors == []


class TestExecute:

    def test_returns_card(self, session):
        session.start_kernel("python3")
        FakeManager.instances[0].responses = [("stream", {"name": "stdout", "text": "3\n"})]
        card = session.execute("print(1 + 2)", "python3")

        assert card.source_code == "print(1 + 2)"
        assert card.kernel == "python3"
        assert [(o.kind, o.payload) for o in card.outputs] == [("stdout", "3\n")]

    def test_setup_code_makes_no_card(self, session):
        session.start_kernel("python3")
        card = session.execute("x = 1", "python3")
        assert card.id == 0

    def test_crlf_normalized_before_submit(self, session):
        session.start_kernel("ir")
        session.execute("a <- 1\r\nb <- 2", "ir")
        assert FakeManager.instances[0].client.executed[-1] == ("a <- 1\nb <- 2", False)

    def test_unstarted_flavor(self, session):
        with pytest.raises(KernelUnavailableError):
            session.execute("1", "ir")

    def test_timeout(self, session):
        session.start_kernel("ir")
        FakeManager.instances[0].hang = True
        with pytest.raises(KernelExecutionError):
            session.execute("Sys.sleep(100)", "ir", timeout=0.01)

    def test_two_flavors(self, session):
        session.start_kernel("python3")
        session.start_kernel("ir")
        py_card = session.execute("1", "python3")
        r_card = session.execute("2", "ir")
        assert (py_card.kernel, r_card.kernel) == ("python3", "ir")
        assert (py_card.id, r_card.id) == (0, 1)


class TestLifecycle:

    def test_restart_kernels(self, session):
        session.start_kernel("python3")
        session.start_kernel("ir")
        session.restart_kernels()

        assert len(FakeManager.instances) == 4
        assert all(m.shut_down for m in FakeManager.instances[:2])
        assert sorted(session.flavors) == ["ir", "python3"]

    def test_shutdown(self, session):
        session.start_kernel("python3")
        session.shutdown()
        manager = FakeManager.instances[0]
        assert manager.shut_down
        assert not manager.client.channels_started
        assert session.flavors == []

    def test_context_manager(self):
        with KernelSession(MessageAggregator(), kernel_manager_factory=FakeManager) as session:
            session.start_kernel("ir")
        assert FakeManager.instances[0].shut_down

    def test_shutdown_continues_after_failure(self, session):
        session.start_kernel("python3")
        session.start_kernel("ir")
        broken = FakeManager.instances[0]

        def fail():
            raise RuntimeError("channels already closed")

        broken.client.stop_channels = fail
        session.shutdown()

        assert all(m.shut_down for m in FakeManager.instances)
        assert session.flavors == []
