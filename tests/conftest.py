"""
Test fixtures for flowscript tests.

Provides sample flow scripts (TypeScript source as strings), a small
in-memory bubble registry, and an autouse fixture that resets the cached
registries and parser config around every test.

Line numbers matter: several tests assert exact lines, so the samples are
written flush-left and start on line 1.
"""

import sys
from pathlib import Path

import pytest

_REPO_ROOT = Path(__file__).resolve().parent.parent
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from flowscript.config.bubble_registry import BubbleRegistry
from flowscript.config.runtime_config import reset_config
from flowscript.config.trigger_registry import TriggerRegistry


# ============================================================================
# Sample flows
# ============================================================================

# Webhook flow: an agent with a configured tool, an anonymous Slack bubble in
# an if branch, and payload defaults.
DIGEST_FLOW = """import { BubbleFlow, AIAgentBubble, SlackBubble } from '@bubblelab/bubble-core';

interface Payload {
  // Slack channel to post to
  channel: string;
  topic?: string;
}

export class DailyDigestFlow extends BubbleFlow<'webhook/http'> {
  async handle(payload: Payload) {
    const { channel, topic = 'news' } = payload;

    // Summarize the topic
    const agent = new AIAgentBubble({
      message: `Summarize ${topic}`,
      model: { model: 'google/gemini-2.5-flash' },
      tools: [{ name: 'web-search-tool' }],
    });
    const summary = await agent.action();

    if (summary.success) {
      await new SlackBubble({
        operation: 'send_message',
        channel: channel,
        text: summary.data.response,
      }).action();
    } else {
      throw new Error('failed');
    }

    return { ok: true };
  }
}
"""

# Cron flow: helper methods, a module function, loops, try/catch and
# Promise.all.
REPORT_FLOW = """import { BubbleFlow, SlackBubble, PostgreSQLBubble, ResendBubble } from '@bubblelab/bubble-core';

function formatRows(rows: string[]): string {
  return rows.join(', ');
}

export class ReportFlow extends BubbleFlow<'schedule/cron'> {
  readonly cronSchedule = '0 9 * * 1-5';

  // Load rows from the database
  private async loadRows(query: string) {
    const db = new PostgreSQLBubble({ query: query });
    return await db.action();
  }

  private async notify(text: string) {
    await new SlackBubble({ operation: 'send_message', channel: 'reports', text }).action();
  }

  async handle(payload: BubbleTriggerEventRegistry['schedule/cron']) {
    const result = await this.loadRows('SELECT 1');
    const summary = formatRows(result.data.rows);

    for (let i = 0; i < 3; i++) {
      const label = `run ${i}`;
      await this.notify(label);
    }

    // Notify again
    await this.notify(summary);

    try {
      const [a, b] = await Promise.all([
        this.loadRows('SELECT 2'),
        this.notify('parallel'),
      ]);
    } catch (error) {
      await new ResendBubble({ operation: 'send_email', to: 'ops@example.com' }).action();
    }

    for (const row of result.data.rows) {
      console.log(row);
    }
    return summary;
  }
}
"""

# Branching flow: if / else if / else and a while loop.
BRANCH_FLOW = """import { BubbleFlow, HelloWorldBubble } from '@bubblelab/bubble-core';

export class BranchFlow extends BubbleFlow<'webhook/http'> {
  async handle(payload: { mode: string }) {
    if (payload.mode === 'a') {
      const first = new HelloWorldBubble({ name: 'a' });
      return first;
    } else if (payload.mode === 'b') {
      const second = new HelloWorldBubble({ name: 'b' });
    } else {
      const third = new HelloWorldBubble({ name: 'c' });
    }
    while (payload.mode !== 'done') {
      break;
    }
  }
}
"""

# Minimal flow with plain initializers, used for mutation tests.
HELLO_FLOW = """import { BubbleFlow, HelloWorldBubble } from '@bubblelab/bubble-core';

export class HelloFlow extends BubbleFlow<'webhook/http'> {
  async handle(payload: { name: string }) {
    const greeting = 'hello';
    let count = 1;
    const bubble = new HelloWorldBubble({ name: payload.name, message: greeting });
    return await bubble.action();
  }
}
"""


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_registries():
    """Drop cached registries and parser config before and after each test."""
    BubbleRegistry.reset()
    TriggerRegistry.reset()
    reset_config()
    yield
    BubbleRegistry.reset()
    TriggerRegistry.reset()
    reset_config()


@pytest.fixture
def digest_flow():
    return DIGEST_FLOW


@pytest.fixture
def report_flow():
    return REPORT_FLOW


@pytest.fixture
def branch_flow():
    return BRANCH_FLOW


@pytest.fixture
def hello_flow():
    return HELLO_FLOW


@pytest.fixture
def registry():
    """The packaged bubble registry."""
    return BubbleRegistry.get_instance()


@pytest.fixture
def cyclic_registry():
    """Registry where a tool depends on an agent that lists the tool again."""
    return BubbleRegistry.from_dict({
        "bubbles": [
            {"name": "ai-agent", "class_name": "AIAgentBubble", "type": "service", "agent": True},
            {
                "name": "research-tool",
                "class_name": "ResearchTool",
                "type": "tool",
                "dependencies": ["ai-agent"],
                "detailed_dependencies": [
                    {"name": "ai-agent", "tools": ["research-tool", "web-search-tool"]},
                ],
            },
            {"name": "web-search-tool", "class_name": "WebSearchTool", "type": "tool"},
        ]
    })


@pytest.fixture
def flow_file(tmp_path):
    """Write a flow script to a temporary .ts file and return its path."""
    def _write(text: str, name: str = "flow.ts") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path
    return _write
