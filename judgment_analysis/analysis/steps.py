"""
Analysis Step Catalog

The ten analysis steps, in execution order, each described by a frozen
StepDescriptor: name, instructions, prompt template, required output fields
and the positional chunk window the step reads from.

Chunk windows are positional, not semantic. They approximate where in a
judgment the relevant material usually sits (cause title up front,
narrative early-middle, reasoning and conclusions at the end); nothing
ranks chunks by relevance.

Prompt templates use two kinds of placeholder:
- {judgmentChunks}: the selected chunk text
- {<stepName>}: the JSON of an earlier step's parsed result
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping


class ChunkWindow(Enum):
    """Which part of the chunk sequence a step reads."""

    FRONT = "front"          # first N chunks
    NARRATIVE = "narrative"  # N chunks starting 20% into the document
    TAIL = "tail"            # last N chunks
    CENTER = "center"        # N chunks centred on the middle


JSON_RESPONSE_INSTRUCTION = "Respond only with a single JSON object."


@dataclass(frozen=True)
class StepDescriptor:
    name: str
    system_prompt: str
    user_template: str
    required_fields: tuple[str, ...]
    window: ChunkWindow = ChunkWindow.CENTER


METADATA_STEP = StepDescriptor(
    name="metadata",
    system_prompt=(
        "You are a legal metadata extraction specialist for Indian court judgments. Extract structured "
        "case information from the judgment text with precise citations to paragraph/page numbers."
        f" {JSON_RESPONSE_INSTRUCTION}"
    ),
    user_template="""Extract the following metadata from this judgment:

JUDGMENT TEXT:
{judgmentChunks}

Extract and return JSON with:
1. caseName: Full case title (e.g., "State of Punjab v. Ajaib Singh")
2. citation: Primary citation (e.g., "AIR 1953 SC 10")
3. court: Court name (e.g., "Supreme Court of India", "Delhi High Court")
4. bench: Bench composition (e.g., "Division Bench of 2 judges", "Constitutional Bench of 5 judges")
5. judges: Array of judge names
6. date: Decision date (YYYY-MM-DD format)
7. anchors: Object mapping each field to {page, paragraph} citation

IMPORTANT: Include precise anchors (page and paragraph numbers) for each extracted field.""",
    required_fields=("caseName", "citation", "court", "bench", "judges", "date", "anchors"),
    window=ChunkWindow.FRONT,
)

FACTS_STEP = StepDescriptor(
    name="facts",
    system_prompt=(
        "You are a legal facts extraction specialist. Extract only the factual background of the case, "
        "distinguishing between admitted facts and disputed facts. Provide precise paragraph/page citations."
        f" {JSON_RESPONSE_INSTRUCTION}"
    ),
    user_template="""Extract the factual background from this judgment:

JUDGMENT TEXT:
{judgmentChunks}

METADATA CONTEXT:
{metadata}

Extract and return JSON with:
1. admittedFacts: Array of undisputed facts, each with {text, anchor: {page, paragraph}}
2. disputedFacts: Array of contested facts, each with {text, anchor: {page, paragraph}}
3. proceduralHistory: Array of procedural events (lower court proceedings, appeals), each with {text, anchor: {page, paragraph}}
4. parties: Object with {appellant: {name, role, anchor}, respondent: {name, role, anchor}, intervenors: [{name, role, anchor}]}

Anchor each fact AND party information to specific paragraph and page numbers.""",
    required_fields=("admittedFacts", "disputedFacts", "proceduralHistory", "parties"),
    window=ChunkWindow.NARRATIVE,
)

TIMELINE_STEP = StepDescriptor(
    name="timeline",
    system_prompt=(
        "You are a legal timeline specialist. Create a chronological timeline of events from the judgment, "
        "including both factual events and procedural milestones. Each event must have a date and citation."
        f" {JSON_RESPONSE_INSTRUCTION}"
    ),
    user_template="""Generate a chronological timeline from this judgment:

JUDGMENT TEXT:
{judgmentChunks}

FACTS CONTEXT:
{facts}

Extract and return JSON with:
1. events: Array of chronological events, each with:
   - date: Event date (YYYY-MM-DD, or "Unknown" if not specified)
   - description: Brief event description
   - type: "factual" | "procedural" | "legal"
   - anchor: {page, paragraph}

Sort events chronologically. Include both factual events and court proceedings.""",
    required_fields=("events",),
    window=ChunkWindow.NARRATIVE,
)

ISSUES_STEP = StepDescriptor(
    name="issues",
    system_prompt=(
        "You are a legal issues identification specialist. Extract the key legal questions and issues framed "
        "by the court. Distinguish between main issues and subsidiary issues."
        f" {JSON_RESPONSE_INSTRUCTION}"
    ),
    user_template="""Identify the legal issues from this judgment:

JUDGMENT TEXT:
{judgmentChunks}

FACTS CONTEXT:
{facts}

Extract and return JSON with:
1. mainIssues: Array of primary legal questions, each with:
   - issueNumber: Sequential number
   - question: The legal question posed
   - anchor: {page, paragraph}
2. subsidiaryIssues: Array of secondary/derivative issues
3. issuesFraming: Verbatim text of how court framed the issues with anchor

Focus on questions of law, not facts.""",
    required_fields=("mainIssues", "subsidiaryIssues", "issuesFraming"),
)

ARGUMENTS_STEP = StepDescriptor(
    name="arguments",
    system_prompt=(
        "You are a legal arguments analysis specialist. Extract and organize arguments presented by each "
        "party, along with court's consideration of those arguments."
        f" {JSON_RESPONSE_INSTRUCTION}"
    ),
    user_template="""Analyze the arguments from this judgment:

JUDGMENT TEXT:
{judgmentChunks}

ISSUES CONTEXT:
{issues}

Extract and return JSON with:
1. appellantArguments: Array of arguments by appellant/petitioner, each with:
   - summary: Argument summary
   - supportingAuthorities: Array of cases/statutes cited
   - anchor: {page, paragraph}
2. respondentArguments: Array of arguments by respondent
3. courtAnalysis: Array of court's consideration/response to each argument, each with:
   - analysis: Court's response/reasoning
   - relatedArgument: Which argument this addresses
   - anchor: {page, paragraph}

Link arguments to specific issues where applicable.""",
    required_fields=("appellantArguments", "respondentArguments", "courtAnalysis"),
)

RATIO_STEP = StepDescriptor(
    name="ratio",
    system_prompt=(
        "You are a legal ratio decidendi extraction specialist. Identify the binding legal principles that "
        "form the basis of the decision. Ratio decidendi is the legal reasoning necessary for the decision."
        f" {JSON_RESPONSE_INSTRUCTION}"
    ),
    user_template="""Extract the ratio decidendi from this judgment:

JUDGMENT TEXT:
{judgmentChunks}

ISSUES CONTEXT:
{issues}

Extract and return JSON with:
1. ratioStatements: Array of binding legal propositions, each with:
   - principle: The legal principle established
   - relatedIssue: Which issue this ratio addresses
   - anchor: {page, paragraph}
   - verbatimQuote: Exact quote from judgment
2. holdings: Final decision/verdict on each issue, each with {decision, relatedIssue, anchor: {page, paragraph}}
3. legalTests: Any tests or standards established by the court, each with {testName, description, anchor: {page, paragraph}}

Ratio must be necessary for the decision, not merely persuasive observations.""",
    required_fields=("ratioStatements", "holdings", "legalTests"),
    window=ChunkWindow.TAIL,
)

OBITER_STEP = StepDescriptor(
    name="obiter",
    system_prompt=(
        "You are a legal obiter dicta extraction specialist. Identify observations, remarks, and legal "
        "discussions that are NOT essential to the decision but may be persuasive."
        f" {JSON_RESPONSE_INSTRUCTION}"
    ),
    user_template="""Extract obiter dicta from this judgment:

JUDGMENT TEXT:
{judgmentChunks}

RATIO CONTEXT:
{ratio}

Extract and return JSON with:
1. obiterStatements: Array of non-binding observations, each with:
   - observation: The court's remark/observation
   - context: Why this was discussed (though not necessary for decision)
   - anchor: {page, paragraph}
   - verbatimQuote: Exact quote
2. dicta: General legal discussions or commentary, each with {discussion, anchor: {page, paragraph}}
3. hypotheticals: Any hypothetical scenarios discussed, each with {scenario, anchor: {page, paragraph}}

Clearly distinguish from ratio - these are NOT binding.""",
    required_fields=("obiterStatements", "dicta", "hypotheticals"),
    window=ChunkWindow.TAIL,
)

STATUTES_STEP = StepDescriptor(
    name="statutes",
    system_prompt=(
        "You are a legal statutes and provisions extraction specialist. Extract all statutes, sections, "
        "articles, and legal provisions cited in the judgment. For IPC provisions, provide BNS equivalents."
        f" {JSON_RESPONSE_INSTRUCTION}"
    ),
    user_template="""Extract statutes and provisions from this judgment:

JUDGMENT TEXT:
{judgmentChunks}

Extract and return JSON with:
1. statutes: Array of statutes/acts cited, each with:
   - name: Full statute name (e.g., "Indian Penal Code, 1860")
   - sections: Array of specific sections/articles cited
   - anchor: {page, paragraph} where first cited
2. ipcToBns: For IPC provisions, map to BNS equivalents:
   - ipcSection: Old IPC section
   - bnsSection: Corresponding BNS section
   - description: What the provision addresses
3. constitutionalProvisions: Separate array for Constitution articles
4. interpretationNotes: How the court interpreted each provision, each with {statute, section, interpretation, anchor: {page, paragraph}}

Include full citation format for each statute.""",
    required_fields=("statutes", "ipcToBns", "constitutionalProvisions", "interpretationNotes"),
)

PRECEDENTS_STEP = StepDescriptor(
    name="precedents",
    system_prompt=(
        "You are a legal precedents extraction specialist. Extract all case law citations, categorize by "
        "treatment (followed, distinguished, overruled), and provide precise anchors."
        f" {JSON_RESPONSE_INSTRUCTION}"
    ),
    user_template="""Extract precedents cited from this judgment:

JUDGMENT TEXT:
{judgmentChunks}

Extract and return JSON with:
1. precedents: Array of cases cited, each with:
   - caseName: Case title
   - citation: Full citation (e.g., "AIR 1973 SC 1461")
   - treatment: "followed" | "distinguished" | "overruled" | "referred" | "approved"
   - proposition: Legal proposition for which case was cited
   - anchor: {page, paragraph}
2. bindingPrecedents: Supreme Court cases that bound the court, each with {caseName, citation, proposition, anchor: {page, paragraph}}
3. persuasivePrecedents: High Court or foreign cases cited persuasively, each with {caseName, citation, proposition, anchor: {page, paragraph}}
4. overruledCases: Any precedents explicitly overruled, each with {caseName, citation, reason, anchor: {page, paragraph}}

Verify citations are accurate and complete.""",
    required_fields=("precedents", "bindingPrecedents", "persuasivePrecedents", "overruledCases"),
    window=ChunkWindow.TAIL,
)

SUMMARY_STEP = StepDescriptor(
    name="summary",
    system_prompt=(
        "You are a legal summary specialist. Create a comprehensive yet concise executive summary of the "
        "judgment suitable for lawyers and law students."
        f" {JSON_RESPONSE_INSTRUCTION}"
    ),
    user_template="""Generate an executive summary from this judgment:

JUDGMENT TEXT:
{judgmentChunks}

ANALYSIS CONTEXT:
Metadata: {metadata}
Facts: {facts}
Timeline: {timeline}
Issues: {issues}
Arguments: {arguments}
Ratio: {ratio}
Obiter: {obiter}
Statutes: {statutes}
Precedents: {precedents}

Generate and return JSON with:
1. headnote: One-paragraph summary (150-200 words) covering facts, issues, and decision
2. keyTakeaways: Array of 3-5 bullet points with main legal principles
3. practicalImplications: How this judgment affects legal practice
4. relatedAreas: Legal domains this judgment impacts (e.g., "Criminal Law", "Evidence Law")
5. verdict: Final outcome (e.g., "Appeal allowed", "Writ dismissed")
6. anchors: Citations to key paragraphs supporting the summary

Make it accessible but legally accurate.""",
    required_fields=("headnote", "keyTakeaways", "practicalImplications", "relatedAreas", "verdict", "anchors"),
    window=ChunkWindow.FRONT,
)

ANALYSIS_STEPS: tuple[StepDescriptor, ...] = (
    METADATA_STEP,
    FACTS_STEP,
    TIMELINE_STEP,
    ISSUES_STEP,
    ARGUMENTS_STEP,
    RATIO_STEP,
    OBITER_STEP,
    STATUTES_STEP,
    PRECEDENTS_STEP,
    SUMMARY_STEP,
)

STEP_NAMES: tuple[str, ...] = tuple(step.name for step in ANALYSIS_STEPS)

_STEPS_BY_NAME = {step.name: step for step in ANALYSIS_STEPS}

PRIOR_CONTEXT_HEADER = "PRIOR ANALYSIS CONTEXT:"

CHUNKS_PLACEHOLDER = "judgmentChunks"
PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")


def get_step(name: str) -> StepDescriptor:
    """
    Raises:
        KeyError: If name is not one of STEP_NAMES
    """
    try:
        return _STEPS_BY_NAME[name]
    except KeyError:
        raise KeyError(f"Unknown analysis step: {name}") from None


def _context_json(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value, indent=2, ensure_ascii=False)


def render_prompt(descriptor: StepDescriptor, judgment_chunks: str,
                  context: Mapping[str, Any]) -> tuple[str, str]:
    """
    Fill a step's template.

    Placeholders are substituted in a single pass over the template, so
    braces inside the judgment text or a prior result are never expanded.
    Every entry in context is a completed step's parsed result. Entries the
    template names as placeholders are substituted in place; the rest are
    appended under PRIOR ANALYSIS CONTEXT so no earlier step is dropped.

    Returns:
        (system prompt, user prompt)
    """
    referenced = set()

    def substitute(match: re.Match) -> str:
        name = match.group(1)
        if name == CHUNKS_PLACEHOLDER:
            return judgment_chunks
        if name in context:
            referenced.add(name)
            return _context_json(context[name])
        return match.group(0)

    user_prompt = PLACEHOLDER_PATTERN.sub(substitute, descriptor.user_template)

    unreferenced = [(name, value) for name, value in context.items() if name not in referenced]
    if unreferenced:
        sections = [f"{name}: {_context_json(value)}" for name, value in unreferenced]
        user_prompt = f"{user_prompt}\n\n{PRIOR_CONTEXT_HEADER}\n" + "\n".join(sections)

    return descriptor.system_prompt, user_prompt
