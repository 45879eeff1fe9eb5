"""
Prompt templates for commit message generation (English and Chinese).
"""

from typing import Iterable, List, Optional, Sequence

from loguru import logger


GIT_FLOW_EN = """7. Git Flow Branch Mapping (Priority):
   - feature/* -> type: feat
   - bugfix/* -> type: fix
   - hotfix/* -> type: fix
   - release/* -> type: chore
   - docs/* -> type: docs
   - If branch name matches, infer <scope> from it (e.g. feature/login -> feat(login): ...)
   - If branch name doesn't match these patterns, ignore it and infer type/scope strictly from the code changes."""

GIT_FLOW_ZH = """7. Git Flow 分支映射规则 (优先级最高):
   - feature/* -> type: feat
   - bugfix/* -> type: fix
   - hotfix/* -> type: fix
   - release/* -> type: chore
   - docs/* -> type: docs
   - 如果分支名匹配，请从中推断 <scope> (例如: feature/login -> feat(login): ...)
   - 如果分支名不符合上述标准前缀，请忽略分支名，仅依据代码变更内容(diff)来决定 type 和 scope。"""

SYSTEM_PROMPT_EN = f"""You are an expert at writing Git commit messages following the Conventional Commits specification.

Based on the git diff provided, generate a concise and descriptive commit message.

Rules:
1. Use the format: <type>(<scope>): <subject>
2. Types: feat, fix, docs, style, refactor, perf, test, chore, build, ci
3. Keep the subject line under 50 characters
4. Use imperative mood ("add" not "added")
5. Don't end the subject line with a period
6. If needed, add a blank line followed by a body for more details
{GIT_FLOW_EN}

Only output the commit message, nothing else."""

SYSTEM_PROMPT_ZH = f"""你是一个专业的 Git commit message 编写专家，遵循 Conventional Commits 规范。

根据提供的 git diff，生成简洁且描述性的提交信息。

规则：
1. 使用格式: <type>(<scope>): <subject>
2. type 类型: feat, fix, docs, style, refactor, perf, test, chore, build, ci
3. subject 保持在 50 字符以内
4. 使用祈使语气
5. subject 末尾不要加句号
6. 如需要，空一行后添加 body 提供更多细节
{GIT_FLOW_ZH}

只输出 commit message，不要输出其他内容。"""

AGENT_SYSTEM_PROMPT_EN = """You are an intelligent Git Assistant with access to tools.
Your goal is to write a high-quality Git commit message following Conventional Commits format.

Process:
1. You will be given a list of changed files with statistics (+/- lines).
2. Analyze which files are critical to understand the change.
3. Use the 'get_file_diff' tool to read the diffs of specific files.
4. IMPORTANT: If you see changes to function signatures, exported APIs, or core logic, use 'search_code' to check if these changes might affect other parts of the project that are NOT in the current staged changes.
5. If you find potential risks (e.g., you changed a function but didn't update all call sites), mention this as a warning in the commit message body.

Rules:
- Focus on core logic and ignore large auto-generated files.
- You may call at most {budget} tools in total.
- The output format of the final message must be: <type>(<scope>): <subject> (and optional body).
- DO NOT use markdown code blocks. Just return the raw commit message text.
- Reply with just the commit message when you are done."""

AGENT_SYSTEM_PROMPT_ZH = """你是一个可以调用工具的智能 Git 助手。
你的目标是按照 Conventional Commits 规范编写高质量的提交信息。

流程：
1. 你会收到变更文件列表及其增删行数统计。
2. 判断哪些文件对理解本次变更最关键。
3. 使用 'get_file_diff' 工具读取具体文件的 diff。
4. 重要：如果发现函数签名、导出 API 或核心逻辑发生变化，使用 'search_code' 检查是否会影响未暂存的其他代码。
5. 如果发现潜在风险（例如修改了函数但没有更新所有调用处），请在提交信息正文中给出警告。

规则：
- 关注核心逻辑，忽略大型自动生成文件。
- 工具调用总次数不超过 {budget} 次。
- 最终输出格式: <type>(<scope>): <subject>（可选正文）。
- 不要使用 Markdown 代码块，直接返回提交信息文本。
- 完成后只回复提交信息。"""

FORCE_ANSWER_EN = (
    "The tool budget for this session is exhausted. Do not request any more tools. "
    "Write the final commit message now using what you have gathered."
)
FORCE_ANSWER_ZH = "本次会话的工具调用次数已用完。不要再调用工具，请根据已获得的信息立即给出最终的提交信息。"


class PromptBuilder:
    """Build system and user prompts for each generation strategy."""

    def __init__(self, locale: str = "en", custom_prompt: Optional[str] = None, recent_limit: int = 10):
        self.locale = locale
        self.custom_prompt = custom_prompt
        self.recent_limit = recent_limit

    @property
    def is_zh(self) -> bool:
        return self.locale == "zh"

    def _t(self, en: str, zh: str) -> str:
        return zh if self.is_zh else en

    def system_prompt(self, candidate_count: int = 1) -> str:
        """System prompt for direct generation."""
        prompt = self.custom_prompt or (SYSTEM_PROMPT_ZH if self.is_zh else SYSTEM_PROMPT_EN)

        if candidate_count > 1:
            prompt += "\n\n" + self._t(
                f"Generate {candidate_count} distinct commit message options. "
                f"Return them as a JSON array of {candidate_count} strings and nothing else. "
                f"If you cannot produce JSON, separate the options with a line containing only \"---\".",
                f"请生成 {candidate_count} 个不同的 commit message 选项，"
                f"以包含 {candidate_count} 个字符串的 JSON 数组返回，不要输出其他内容。"
                f"如果无法输出 JSON，请用单独一行 \"---\" 分隔每个选项。",
            )

        return prompt

    def build_user_prompt(
        self,
        diff_text: str,
        staged_files: Sequence[str] = (),
        ignored_files: Sequence[str] = (),
        truncated: bool = False,
        branch_name: Optional[str] = None,
        recent_subjects: Sequence[str] = (),
        analysis: Optional[str] = None
    ) -> str:
        """User prompt carrying the diff bundle and its context."""
        sections: List[str] = []

        subjects = list(recent_subjects)[:self.recent_limit]
        if subjects:
            header = self._t(
                "Reference recent commits (please mimic the style):",
                "参考历史提交风格 (请模仿以下风格):",
            )
            sections.append(f"{header}\n{self._bullets(subjects)}")

        if branch_name:
            sections.append(f"{self._t('Current branch:', '当前分支:')} {branch_name}")

        if staged_files:
            sections.append(f"{self._t('Staged files:', '已暂存文件:')}\n{self._bullets(staged_files)}")

        if ignored_files:
            header = self._t(
                "Ignored files (diff omitted for token optimization):",
                "以下文件为节省 Token 已忽略 Diff:",
            )
            sections.append(f"{header}\n{self._bullets(ignored_files)}")

        if truncated:
            sections.append(self._t(
                "Note: The diff was truncated due to size limits.",
                "注意：Diff 内容已因长度限制被截断。",
            ))

        if analysis:
            sections.append(analysis)

        sections.append(f"{self._t('Git diff:', 'Git Diff:')}\n\n{diff_text or '(empty)'}")

        prompt = "\n\n".join(sections)
        logger.debug(f"User prompt length: {len(prompt)} characters")
        return prompt

    def agent_system_prompt(self, budget: int) -> str:
        template = AGENT_SYSTEM_PROMPT_ZH if self.is_zh else AGENT_SYSTEM_PROMPT_EN
        prompt = template.format(budget=budget)
        if self.custom_prompt:
            prompt += "\n\n" + self.custom_prompt
        return prompt

    def agent_initial_prompt(self, file_stats: Iterable, branch_name: Optional[str] = None) -> str:
        """File summary the tool agent starts from; no diff text is included."""
        summary = "\n".join(
            f"{stat.path} (+{stat.insertions}, -{stat.deletions})" for stat in file_stats
        )
        if self.is_zh:
            return (
                f"当前分支: {branch_name or 'unknown'}\n\n"
                f"已暂存文件概要:\n{summary}\n\n"
                "请分析这些变更。如果发现破坏性变更，请搜索其用法以确保安全。"
            )
        return (
            f"Current Branch: {branch_name or 'unknown'}\n\n"
            f"Staged Files Summary:\n{summary}\n\n"
            "Please analyze these changes. If you detect breaking changes, search for usages to ensure safety."
        )

    def force_answer_directive(self) -> str:
        return FORCE_ANSWER_ZH if self.is_zh else FORCE_ANSWER_EN

    @staticmethod
    def _bullets(items: Iterable[str]) -> str:
        return "\n".join(f"- {item}" for item in items)
