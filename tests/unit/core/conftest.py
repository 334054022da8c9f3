"""Shared fixtures for core unit tests"""

import pytest

from adfmark.core.parse import parse_markdown
from adfmark.core.render.engine import default_registry, render_document


SAMPLE_MD = """\
# Heading 1

A paragraph with **bold** text.

## Heading 2

- item one
- item two

```python
print("hello")
```

---

Footer paragraph.
"""


@pytest.fixture(name="registry")
def registry_fixture():
    return default_registry()


@pytest.fixture(name="to_doc")
def to_doc_fixture():
    """Markdown text -> Document through the canonical pipeline."""
    return lambda text, **kwargs: parse_markdown(text, **kwargs).document


@pytest.fixture(name="to_md")
def to_md_fixture(registry):
    """Document -> markdown text with the shared registry."""
    return lambda doc, **kwargs: render_document(doc, registry=registry, **kwargs).markdown


@pytest.fixture(name="sample_md")
def sample_md_fixture():
    return SAMPLE_MD
