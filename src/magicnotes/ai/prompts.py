def build_title_prompt(content: str, language: str = "English") -> str:
    return (
        f"Write a short, catchy and relevant title (at most 5 words) in {language} "
        f"for the following note. Do not use quotation marks.\n\n"
        f"Note:\n{content}"
    )


def build_summary_prompt(content: str, language: str = "English") -> str:
    return (
        f"Summarize the following note as one short, information-dense paragraph "
        f"in {language}:\n\n{content}"
    )


def build_continue_prompt(content: str, language: str = "English") -> str:
    return (
        f"Continue the following text in the same style, adding about 2-3 relevant "
        f"sentences in {language}:\n\n{content}"
    )


def build_grammar_prompt(content: str, language: str = "English") -> str:
    return (
        f"Fix the grammar, spelling and punctuation of the following text in {language} "
        f"so it reads more professionally, without changing its meaning. "
        f"Return only the corrected text:\n\n{content}"
    )


def build_custom_prompt(instruction: str, context: str, language: str = "English") -> str:
    return f"""You are Magic, the AI assistant built into MagicNotes. You are skilled at creative writing, data analysis and programming.

USER INSTRUCTION:
"{instruction}"

CONTEXT (the current note or code):
"{context}"

Response guidelines:
1. If the context is SOURCE CODE:
   - Give optimal, safe and clean solutions.
   - When asked to translate code, return only the resulting code unless an explanation is requested.
   - Do not wrap the output in markdown fences (```) since it is inserted straight into a code editor, unless the user asks for an explanation.
2. If the context is PLAIN TEXT:
   - Write in clear {language}.
   - Use simple HTML (<p>, <b>, <ul>, <li>) for structure.

Reply with the content directly, without an introduction such as "Here is the result"."""
