"""Claude Code adapter — runs the Claude Code CLI as a worker.

Learn: Claude Code is Anthropic's coding agent CLI. We use:
- --print: Non-interactive mode (reads prompt, works, prints output, exits)
- --dangerously-skip-permissions: the worker runs unattended; nobody is at
  the terminal to approve tool use
- --max-turns: optional safety limit on agentic loop iterations
- --session-id: pin a native session id (only when a resume hint is given)

The prompt is a positional argument and always comes last. The worker
reaches the user through the call-back endpoints described in the prompt,
called with curl.
"""

import shutil
from typing import Optional, Sequence

from callbridge.agent.adapters.base import TaskContext, WorkerAdapter
from callbridge.models import Channel


class ClaudeCodeAdapter(WorkerAdapter):
    """Adapter for Claude Code CLI (claude command)."""

    def __init__(self, binary: str = "claude", max_turns: int = 0):
        self.binary = binary
        self.max_turns = max_turns

    @property
    def name(self) -> str:
        return "claude_code"

    def validate_environment(self) -> tuple[bool, str]:
        """Check that the `claude` binary is available."""
        if shutil.which(self.binary):
            return True, "Claude Code CLI found"
        return (
            False,
            f"Claude Code CLI '{self.binary}' not found on PATH. "
            "Install with: npm install -g @anthropic-ai/claude-code",
        )

    def build_command(self, prompt: str, resume_hint: Optional[str] = None) -> list[str]:
        cmd = [self.binary, "--print", "--dangerously-skip-permissions"]
        if self.max_turns:
            cmd += ["--max-turns", str(self.max_turns)]
        if resume_hint:
            cmd += ["--session-id", resume_hint]
        cmd.append(prompt)
        return cmd

    # ─── One-shot task prompt ─────────────────────────────

    def _build_context_section(self, context: Optional[TaskContext]) -> str:
        if not context:
            return ""
        outcome = (
            f'**What You Created**: "{context.completion_summary}"'
            if context.completion_summary
            else "**Status**: that task had not reported completion yet"
        )
        return f"""
## IMPORTANT: Previous Task Context

This is a FOLLOW-UP. Before this, you worked on a task:

**Original Request**: "{context.original_task}"
{outcome}
**Working Directory**: {context.working_dir}

The user is asking a follow-up about that work. Continue in the same
directory and build on what was already created.
"""

    def build_task_prompt(
        self,
        task: str,
        conversation_id: str,
        api_url: str,
        working_dir: str,
        channel: Channel = Channel.VOICE,
        context: Optional[TaskContext] = None,
    ) -> str:
        context_section = self._build_context_section(context)
        if channel is Channel.VOICE:
            intro = f'You received a phone call from a user. Their request was:\n"{task}"'
            comms = self._voice_instructions(conversation_id, api_url)
            style = "Phone conversation - questions should be 1-2 sentences max"
        else:
            label = "SMS" if channel is Channel.SMS else "WhatsApp"
            intro = f'You received a {label} message from a user. Their request was:\n"{task}"'
            comms = self._messaging_instructions(channel, api_url)
            style = "Chat conversation - keep messages short and skimmable"

        start = (
            "This is a follow-up request - use your context from the previous task."
            if context
            else "Clarify if needed, then execute the task."
        )

        return f"""{intro}
{context_section}
{comms}
### Report completion (REQUIRED when done):
```bash
curl -s -X POST {api_url}/api/worker/complete/{conversation_id} \\
  -H "Content-Type: application/json" \\
  -d '{{"summary": "Created todo app in ./todo-app with React frontend"}}'
```
This reaches the user on the live channel, or calls them back if they are gone.

### Check whether the conversation is still live:
```bash
curl -s {api_url}/api/worker/status/{conversation_id}
```

## Important Instructions

1. **Clarify first**: If the request is unclear, ask before building
2. **Keep it short**: {style}
3. **Give updates**: Send progress updates on longer tasks
4. **Work locally**: Create files and directories in {working_dir}
5. **Always complete**: When done, ALWAYS call /api/worker/complete with a summary

Start now. {start}
""".strip()

    def _voice_instructions(self, conversation_id: str, api_url: str) -> str:
        return f"""
## Phone Communication API

You talk to the user through these HTTP endpoints. Use curl to call them.

### Ask a question (blocking - waits for the user's spoken answer):
```bash
curl -s -X POST {api_url}/api/worker/ask/{conversation_id} \\
  -H "Content-Type: application/json" \\
  -d '{{"message": "What tech stack would you like?"}}'
```
Returns JSON: {{"response": "user's spoken answer", "user_on_call": true}}

### Say something (non-blocking):
```bash
curl -s -X POST {api_url}/api/worker/say/{conversation_id} \\
  -H "Content-Type: application/json" \\
  -d '{{"message": "Working on it, this might take a minute..."}}'
```

### Send a text the user can click (URLs, code):
```bash
curl -s -X POST {api_url}/api/worker/send/sms \\
  -H "Content-Type: application/json" \\
  -d '{{"message": "Here is the URL: https://example.com"}}'
```
Use /api/worker/send/whatsapp for WhatsApp instead.
"""

    def _messaging_instructions(self, channel: Channel, api_url: str) -> str:
        return f"""
## Messaging API

You talk to the user through these HTTP endpoints. Use curl to call them.

### Send a message:
```bash
curl -s -X POST {api_url}/api/worker/send/{channel.value} \\
  -H "Content-Type: application/json" \\
  -d '{{"message": "YOUR MESSAGE HERE"}}'
```

### Wait for the user's next message (blocking):
```bash
curl -s -X POST {api_url}/api/worker/wait/{channel.value} \\
  -H "Content-Type: application/json" \\
  -d '{{"timeout_seconds": 300}}'
```
Returns JSON: {{"received": true, "message": "..."}} or {{"received": false, "reason": "timeout"}}
"""

    # ─── Always-on chat prompt ────────────────────────────

    def build_chat_prompt(
        self,
        latest_message: str,
        history: Sequence[tuple[str, str]],
        session_id: str,
        api_url: str,
        working_dir: str,
        channel: Channel = Channel.WHATSAPP,
        carried_context: Optional[str] = None,
    ) -> str:
        label = "SMS" if channel is Channel.SMS else "WhatsApp"

        context_block = ""
        if carried_context:
            context_block = f"""
## Voice Call Context

The following context was carried over from a recent voice call:
{carried_context}
"""

        history_block = ""
        if history:
            turns = "\n".join(
                f"{'User' if role == 'user' else 'Assistant'}: {content}"
                for role, content in history
            )
            history_block = f"## Conversation History\n\n{turns}\n"

        return f"""You are continuing an always-on {label} conversation with the user.
{context_block}
{history_block}
## Latest Message

User: {latest_message}

## Instructions

Respond to the user's latest message via {label}. Use the endpoint below to send your response.
Keep responses concise — this is a chat conversation, not a report.

### Send {label} message:
```bash
curl -s -X POST {api_url}/api/worker/send/{channel.value} \\
  -H "Content-Type: application/json" \\
  -d '{{"message": "YOUR RESPONSE HERE"}}'
```

You can send multiple messages if needed (for long responses, break them up).
You can also execute code, create files, etc. — you have full Claude Code capabilities.
Work in directory: {working_dir}

IMPORTANT: Always append a session footer to your LAST message:
```
---
Session: {session_id}
```

Do NOT use /api/worker/ask, /api/worker/say, or /api/worker/complete — those are for voice calls only.
""".strip()
