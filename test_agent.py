"""Tests for the task-execution agent loop."""

import pytest

from agent import (
    AgentAborted,
    AgentError,
    STEP_LIMIT_SUMMARY,
    TaskRequest,
    create_task_execution_agent,
)
from conftest import MemoryBackend, ScriptedProvider, actions


TASK = TaskRequest(title="Fix", description="Uppercase line 2", affected_files=["src/app.py"])

FINISH = {"type": "finish", "summary": "Done editing."}


def last_feedback(provider, call_index):
    """The user message the agent sent on a given provider call."""
    return provider.calls[call_index][-1]["content"]


def make_agent(provider, backend, config, **kwargs):
    return create_task_execution_agent(provider, backend, config, **kwargs)


@pytest.mark.asyncio
async def test_replace_lines_then_finish(memory_backend, workspace_config):
    provider = ScriptedProvider(actions(
        {"type": "replaceLines", "path": "src/app.py", "startLine": 2, "endLine": 2, "newText": "B"},
        FINISH,
    ))
    agent = make_agent(provider, memory_backend, workspace_config)

    result = await agent.execute(TASK)

    assert result.ok is True
    assert result.summary == "Done editing."
    assert result.files_changed == ["src/app.py"]
    assert result.commands_run == []
    assert memory_backend.files["src/app.py"] == "a\nB\nc\n"
    assert memory_backend.commands == []
    assert agent.snapshots == {}


@pytest.mark.asyncio
async def test_initial_messages(memory_backend, workspace_config):
    provider = ScriptedProvider(actions(FINISH))
    await make_agent(provider, memory_backend, workspace_config).execute(TASK)

    system, user = provider.calls[0]
    assert system["role"] == "system"
    assert '"actions"' in system["content"]
    assert "Extra instructions:" in system["content"]
    assert user["role"] == "user"
    assert "Task Title: Fix" in user["content"]
    assert "- src/app.py" in user["content"]
    assert "Workspace root: /mem" in user["content"]


@pytest.mark.asyncio
async def test_step_limit_reverts_every_change(memory_backend, workspace_config):
    provider = ScriptedProvider(actions(
        {"type": "writeFile", "path": "src/new.py", "content": "print('hi')\n"},
        {"type": "replaceLines", "path": "src/app.py", "startLine": 1, "endLine": 1, "newText": "Z"},
    ))
    events = []

    async def on_event(event):
        events.append(event)

    agent = make_agent(provider, memory_backend, workspace_config, max_turns=3, on_event=on_event)
    result = await agent.execute(TASK)

    assert result.ok is False
    assert result.summary == STEP_LIMIT_SUMMARY
    assert len(provider.calls) == 3
    assert memory_backend.files == {"src/app.py": "a\nb\nc\n"}
    assert set(result.files_changed) == {"src/new.py", "src/app.py"}
    reverted = [e for e in events if e.type == "reverted"]
    assert len(reverted) == 1
    assert set(reverted[0].data["paths"]) == {"src/new.py", "src/app.py"}


@pytest.mark.asyncio
async def test_snapshot_keeps_content_from_before_first_write(memory_backend, workspace_config):
    provider = ScriptedProvider(actions(
        {"type": "writeFile", "path": "src/app.py", "content": "one\n"},
        {"type": "writeFile", "path": "src/app.py", "content": "two\n"},
    ))
    agent = make_agent(provider, memory_backend, workspace_config, max_turns=1)

    result = await agent.execute(TASK)

    assert result.ok is False
    assert memory_backend.files["src/app.py"] == "a\nb\nc\n"
    assert result.files_changed == ["src/app.py"]


@pytest.mark.asyncio
async def test_denied_command_never_reaches_host(memory_backend, workspace_config):
    provider = ScriptedProvider(actions({"type": "runCommand", "command": "npm test"}), actions(FINISH))
    asked = []

    async def approve(command, reason):
        asked.append((command, reason))
        return "deny"

    agent = make_agent(provider, memory_backend, workspace_config, approve_command=approve)
    result = await agent.execute(TASK)

    assert result.ok is True
    assert asked == [("npm test", "Command not allowlisted.")]
    assert memory_backend.commands == []
    assert "runCommand(npm test): DENIED by user." in last_feedback(provider, 1)
    assert result.commands_run == []


@pytest.mark.asyncio
async def test_command_needing_approval_denied_without_gate(memory_backend, workspace_config):
    provider = ScriptedProvider(actions({"type": "runCommand", "command": "npm test"}), actions(FINISH))
    agent = make_agent(provider, memory_backend, workspace_config)

    await agent.execute(TASK)

    assert memory_backend.commands == []
    assert "no approval mechanism available" in last_feedback(provider, 1)


@pytest.mark.asyncio
async def test_allow_once_runs_without_touching_config(memory_backend, workspace_config):
    provider = ScriptedProvider(actions({"type": "runCommand", "command": "npm test"}), actions(FINISH))
    saves = []

    async def approve(command, reason):
        return "allowOnce"

    async def save_config(cfg):
        saves.append(cfg)

    agent = make_agent(provider, memory_backend, workspace_config,
                       approve_command=approve, save_config=save_config)
    result = await agent.execute(TASK)

    assert memory_backend.commands == ["npm test"]
    assert [(r.command, r.exit_code) for r in result.commands_run] == [("npm test", 0)]
    assert workspace_config.execution.allowed_commands == []
    assert saves == []
    assert "exit 0" in last_feedback(provider, 1)


@pytest.mark.asyncio
async def test_allow_always_persists_and_skips_later_prompts(memory_backend, workspace_config):
    run = {"type": "runCommand", "command": "npm  test"}
    provider = ScriptedProvider(actions(run), actions(run), actions(FINISH))
    asked = []
    saves = []

    async def approve(command, reason):
        asked.append(command)
        return "allowAlways"

    async def save_config(cfg):
        saves.append(list(cfg.execution.allowed_commands))

    agent = make_agent(provider, memory_backend, workspace_config,
                       approve_command=approve, save_config=save_config)
    await agent.execute(TASK)

    assert asked == ["npm  test"]
    assert saves == [["npm test"]]
    assert workspace_config.execution.allowed_commands == ["npm test"]
    assert memory_backend.commands == ["npm  test", "npm  test"]


@pytest.mark.asyncio
async def test_failed_save_does_not_stop_the_task(memory_backend, workspace_config):
    provider = ScriptedProvider(actions({"type": "runCommand", "command": "npm test"}), actions(FINISH))

    async def approve(command, reason):
        return "allowAlways"

    async def save_config(cfg):
        raise OSError("read-only filesystem")

    agent = make_agent(provider, memory_backend, workspace_config,
                       approve_command=approve, save_config=save_config)
    result = await agent.execute(TASK)

    assert result.ok is True
    assert memory_backend.commands == ["npm test"]


@pytest.mark.asyncio
async def test_unrecognized_approval_is_treated_as_deny(memory_backend, workspace_config):
    provider = ScriptedProvider(actions({"type": "runCommand", "command": "npm test"}), actions(FINISH))

    async def approve(command, reason):
        return "maybe"

    agent = make_agent(provider, memory_backend, workspace_config, approve_command=approve)
    await agent.execute(TASK)

    assert memory_backend.commands == []
    assert "DENIED by user." in last_feedback(provider, 1)


@pytest.mark.asyncio
async def test_abort_reverts_and_raises(memory_backend, workspace_config):
    provider = ScriptedProvider(actions(
        {"type": "writeFile", "path": "src/app.py", "content": "changed\n"},
        {"type": "runCommand", "command": "npm test"},
        FINISH,
    ))

    async def approve(command, reason):
        return "abort"

    agent = make_agent(provider, memory_backend, workspace_config, approve_command=approve)
    with pytest.raises(AgentAborted):
        await agent.execute(TASK)

    assert memory_backend.files == {"src/app.py": "a\nb\nc\n"}
    assert memory_backend.commands == []
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_dangerous_command_denied_without_asking(memory_backend, workspace_config):
    provider = ScriptedProvider(actions({"type": "runCommand", "command": "rm -rf ."}), actions(FINISH))
    asked = []

    async def approve(command, reason):
        asked.append(command)
        return "allowOnce"

    agent = make_agent(provider, memory_backend, workspace_config, approve_command=approve)
    await agent.execute(TASK)

    assert asked == []
    assert memory_backend.commands == []
    assert "allowDangerous=false" in last_feedback(provider, 1)


@pytest.mark.asyncio
async def test_allowlisted_command_records_exit_code(workspace_config):
    backend = MemoryBackend({"src/app.py": "a\n"}, exit_code=3)
    workspace_config.execution.allowed_command_prefixes = ["make "]
    provider = ScriptedProvider(actions({"type": "runCommand", "command": "make test", "cwd": "src"}),
                                actions(FINISH))
    agent = make_agent(provider, backend, workspace_config)

    result = await agent.execute(TASK)

    assert backend.commands == ["make test"]
    assert [(r.command, r.exit_code) for r in result.commands_run] == [("make test", 3)]
    assert "runCommand(make test)\nexit 3\n[stdout]\nok" in last_feedback(provider, 1)


@pytest.mark.asyncio
async def test_command_cwd_must_stay_inside_workspace(memory_backend, workspace_config):
    workspace_config.execution.policy = "unrestricted"
    provider = ScriptedProvider(actions({"type": "runCommand", "command": "ls", "cwd": "../.."}),
                                actions(FINISH))
    agent = make_agent(provider, memory_backend, workspace_config)

    await agent.execute(TASK)

    assert memory_backend.commands == []
    assert "cwd escapes workspace root" in last_feedback(provider, 1)


@pytest.mark.asyncio
async def test_write_to_env_file_is_denied(memory_backend, workspace_config):
    provider = ScriptedProvider(actions({"type": "writeFile", "path": ".env", "content": "TOKEN=x"}),
                                actions(FINISH))
    events = []

    async def on_event(event):
        events.append(event)

    agent = make_agent(provider, memory_backend, workspace_config, on_event=on_event)
    result = await agent.execute(TASK)

    assert ".env" not in memory_backend.files
    assert result.files_changed == []
    assert "writeFile(.env): DENIED - Path is denied by policy" in last_feedback(provider, 1)
    assert any(e.type == "tool_rejected" for e in events)


@pytest.mark.asyncio
async def test_write_outside_allowed_scope_is_denied(memory_backend, workspace_config):
    workspace_config.execution.allowed_path_globs = ["src/**"]
    provider = ScriptedProvider(actions({"type": "writeFile", "path": "docs/a.md", "content": "x"}),
                                actions(FINISH))
    agent = make_agent(provider, memory_backend, workspace_config)

    await agent.execute(TASK)

    assert "docs/a.md" not in memory_backend.files
    assert "Path is outside allowed scope: docs/a.md" in last_feedback(provider, 1)


@pytest.mark.asyncio
async def test_write_escaping_root_is_denied(memory_backend, workspace_config):
    provider = ScriptedProvider(actions({"type": "writeFile", "path": "../x.txt", "content": "x"}),
                                actions(FINISH))
    agent = make_agent(provider, memory_backend, workspace_config)

    await agent.execute(TASK)

    assert memory_backend.files.keys() == {"src/app.py"}
    assert "Path escapes workspace root." in last_feedback(provider, 1)


@pytest.mark.asyncio
async def test_replace_lines_on_missing_file(memory_backend, workspace_config):
    provider = ScriptedProvider(actions(
        {"type": "replaceLines", "path": "src/missing.py", "startLine": 1, "endLine": 1, "newText": "x"},
    ), actions(FINISH))
    agent = make_agent(provider, memory_backend, workspace_config)

    result = await agent.execute(TASK)

    assert "src/missing.py" not in memory_backend.files
    assert result.files_changed == []
    assert "replaceLines(src/missing.py:1-1): ERROR file does not exist" in last_feedback(provider, 1)


@pytest.mark.asyncio
async def test_failed_write_is_reported(memory_backend, workspace_config):
    memory_backend.fail_writes_for.add("src/app.py")
    provider = ScriptedProvider(actions({"type": "writeFile", "path": "src/app.py", "content": "x"}),
                                actions(FINISH))
    agent = make_agent(provider, memory_backend, workspace_config)

    result = await agent.execute(TASK)

    assert result.files_changed == []
    assert "writeFile(src/app.py): ERROR disk full: src/app.py" in last_feedback(provider, 1)


@pytest.mark.asyncio
async def test_invalid_json_costs_a_turn(memory_backend, workspace_config):
    provider = ScriptedProvider("I will now fix it.", actions(FINISH))
    agent = make_agent(provider, memory_backend, workspace_config)

    result = await agent.execute(TASK)

    assert result.ok is True
    assert agent.turn == 2
    assert last_feedback(provider, 1).startswith("ERROR: Response was not valid JSON.")
    assert provider.calls[1][-2] == {"role": "assistant", "content": "I will now fix it."}


@pytest.mark.asyncio
async def test_missing_actions_array_costs_a_turn(memory_backend, workspace_config):
    provider = ScriptedProvider({"action": "finish"}, actions(FINISH))
    agent = make_agent(provider, memory_backend, workspace_config)

    result = await agent.execute(TASK)

    assert result.ok is True
    assert '"actions" array' in last_feedback(provider, 1)


@pytest.mark.asyncio
async def test_only_garbage_exhausts_budget(memory_backend, workspace_config):
    provider = ScriptedProvider("garbage")
    agent = make_agent(provider, memory_backend, workspace_config, max_turns=2)

    result = await agent.execute(TASK)

    assert result.ok is False
    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_unknown_action_yields_error_line(memory_backend, workspace_config):
    provider = ScriptedProvider(actions({"type": "deleteEverything"}, {"path": "x"}), actions(FINISH))
    agent = make_agent(provider, memory_backend, workspace_config)

    await agent.execute(TASK)

    feedback = last_feedback(provider, 1)
    assert "ERROR: Unknown action type: deleteEverything" in feedback
    assert "ERROR: Invalid action:" in feedback


@pytest.mark.asyncio
async def test_empty_action_batch(memory_backend, workspace_config):
    provider = ScriptedProvider(actions(), actions(FINISH))
    agent = make_agent(provider, memory_backend, workspace_config)

    await agent.execute(TASK)

    assert "(no actions)" in last_feedback(provider, 1)


@pytest.mark.asyncio
async def test_finish_stops_remaining_actions(memory_backend, workspace_config):
    provider = ScriptedProvider(actions(FINISH, {"type": "writeFile", "path": "late.txt", "content": "x"}))
    agent = make_agent(provider, memory_backend, workspace_config)

    result = await agent.execute(TASK)

    assert result.ok is True
    assert "late.txt" not in memory_backend.files


@pytest.mark.asyncio
async def test_read_file_is_clamped_and_truncated(workspace_config):
    backend = MemoryBackend({"big.txt": "x" * 3000})
    provider = ScriptedProvider(actions({"type": "readFile", "path": "big.txt", "maxChars": 10}),
                                actions(FINISH))
    agent = make_agent(provider, backend, workspace_config)

    await agent.execute(TASK)

    feedback = last_feedback(provider, 1)
    assert "readFile(big.txt)\n```\n1| " in feedback
    assert "x" * 1000 in feedback
    assert "x" * 1001 not in feedback
    assert "…(truncated)…" in feedback


@pytest.mark.asyncio
async def test_read_file_outside_root_and_missing(memory_backend, workspace_config):
    provider = ScriptedProvider(actions(
        {"type": "readFile", "path": "../secret.txt"},
        {"type": "readFile", "path": "nope.txt"},
    ), actions(FINISH))
    agent = make_agent(provider, memory_backend, workspace_config)

    await agent.execute(TASK)

    feedback = last_feedback(provider, 1)
    assert "readFile(../secret.txt): DENIED - Path escapes workspace root." in feedback
    assert "readFile(nope.txt): ERROR file does not exist" in feedback


@pytest.mark.asyncio
async def test_glob_lists_matches(memory_backend, workspace_config):
    provider = ScriptedProvider(actions(
        {"type": "glob", "pattern": "src/*.py"},
        {"type": "glob", "pattern": "../*"},
    ), actions(FINISH))
    agent = make_agent(provider, memory_backend, workspace_config)

    await agent.execute(TASK)

    feedback = last_feedback(provider, 1)
    assert "glob(src/*.py)\n1 file(s)\n- src/app.py" in feedback
    assert "glob(../*): DENIED" in feedback


@pytest.mark.asyncio
async def test_provider_failure_reverts_and_raises(memory_backend, workspace_config):
    class FlakyProvider(ScriptedProvider):
        def chat(self, messages, config=None):
            if self.calls:
                raise RuntimeError("throttled")
            return super().chat(messages, config)

    provider = FlakyProvider(actions({"type": "writeFile", "path": "src/app.py", "content": "x"}))
    agent = make_agent(provider, memory_backend, workspace_config)

    with pytest.raises(AgentError) as excinfo:
        await agent.execute(TASK)

    assert excinfo.value.code == "RUNTIME"
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert memory_backend.files["src/app.py"] == "a\nb\nc\n"


@pytest.mark.asyncio
async def test_non_finite_number_is_an_action_error(memory_backend, workspace_config):
    reply = ('{"actions": [{"type": "writeFile", "path": "src/app.py", "content": "x"}, '
             '{"type": "glob", "pattern": "**/*", "limit": 1e999}]}')
    provider = ScriptedProvider(reply, actions(FINISH))
    agent = make_agent(provider, memory_backend, workspace_config)

    result = await agent.execute(TASK)

    assert result.ok is True
    assert "ERROR: limit must be a finite number" in last_feedback(provider, 1)
    assert memory_backend.files["src/app.py"] == "x"


@pytest.mark.asyncio
async def test_unexpected_failure_reverts_and_raises(memory_backend, workspace_config):
    provider = ScriptedProvider(actions({"type": "writeFile", "path": "src/app.py", "content": "x"}))

    async def on_event(event):
        if event.type == "tool_result":
            raise RuntimeError("listener crashed")

    agent = make_agent(provider, memory_backend, workspace_config, on_event=on_event)

    with pytest.raises(AgentError) as excinfo:
        await agent.execute(TASK)

    assert excinfo.value.code == "RUNTIME"
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert memory_backend.files["src/app.py"] == "a\nb\nc\n"


@pytest.mark.asyncio
async def test_deeply_nested_reply_reverts_and_raises(memory_backend, workspace_config):
    nested = '{"actions": [{"type": "writeFile", "path": "src/app.py", "content": "x"}]}'
    provider = ScriptedProvider(nested, "[" * 100000 + "]" * 100000)
    agent = make_agent(provider, memory_backend, workspace_config)

    with pytest.raises(AgentError) as excinfo:
        await agent.execute(TASK)

    assert isinstance(excinfo.value.__cause__, RecursionError)
    assert memory_backend.files["src/app.py"] == "a\nb\nc\n"


@pytest.mark.asyncio
async def test_agent_is_single_use(memory_backend, workspace_config):
    agent = make_agent(ScriptedProvider(actions(FINISH)), memory_backend, workspace_config)
    await agent.execute(TASK)

    with pytest.raises(AgentError):
        await agent.execute(TASK)


@pytest.mark.parametrize("missing, message", [
    ("provider", "Missing AI provider"),
    ("backend", "Missing execution host"),
    ("config", "Missing agent config"),
])
def test_missing_collaborators_are_config_errors(missing, message, memory_backend, workspace_config):
    parts = {"provider": ScriptedProvider(actions(FINISH)), "backend": memory_backend,
             "config": workspace_config}
    parts[missing] = None

    with pytest.raises(AgentError) as excinfo:
        create_task_execution_agent(parts["provider"], parts["backend"], parts["config"])

    assert excinfo.value.code == "CONFIG"
    assert message in str(excinfo.value)
