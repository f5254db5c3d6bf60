"""
Script compiler - converts parsed Documents to and from JSON.

Compiled JSON is validated against DOCUMENT_SCHEMA when read back, so a
host can ship pre-parsed scripts without trusting their structure.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import jsonschema

from bdl.script.document import (
    EXIT,
    Branch,
    Call,
    Condition,
    ContentElement,
    Destination,
    Document,
    Dynamic,
    FileTransfer,
    Jump,
    Metadata,
    Node,
    NodeRef,
    Option,
    Text,
)
from bdl.script.parser import ScriptParser

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

_DESTINATION_SCHEMA = {
    "type": "object",
    "required": ["type"],
    "properties": {
        "type": {"enum": ["node", "transfer", "exit", "dynamic"]},
        "name": {"type": "string"},
        "file": {"type": "string"},
        "node": {"type": "string"},
        "variable": {"type": "string"},
    },
    "additionalProperties": False,
}

DOCUMENT_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["format", "name", "metadata", "declares_global", "nodes"],
    "properties": {
        "format": {"const": FORMAT_VERSION},
        "name": {"type": "string", "minLength": 1},
        "metadata": {
            "type": "object",
            "required": ["topic", "description", "author", "version"],
            "properties": {
                "topic": {"type": "string"},
                "description": {"type": "string"},
                "author": {"type": "string"},
                "version": {"type": "string"},
                "required": {
                    "type": ["array", "null"],
                    "items": {"type": "string"},
                },
                "extra": {
                    "type": "object",
                    "additionalProperties": {"type": "string"},
                },
            },
        },
        "declares_global": {"type": "boolean"},
        "local_vars": {"type": "object"},
        "global_vars": {"type": "object"},
        "nodes": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name", "content", "branches"],
                "properties": {
                    "name": {"type": "string", "pattern": "^[A-Za-z0-9_]+$"},
                    "line": {"type": "integer"},
                    "content": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["type"],
                            "properties": {
                                "type": {"enum": ["text", "call"]},
                                "text": {"type": "string"},
                                "function": {"type": "string"},
                                "bindings": {
                                    "type": "array",
                                    "items": {"type": "string"},
                                    "minItems": 1,
                                },
                            },
                        },
                    },
                    "branches": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["type", "destination"],
                            "properties": {
                                "type": {"enum": ["option", "condition", "jump"]},
                                "keywords": {
                                    "type": "array",
                                    "items": {"type": "string"},
                                    "minItems": 1,
                                },
                                "variable": {"type": "string"},
                                "destination": _DESTINATION_SCHEMA,
                            },
                        },
                    },
                },
            },
        },
    },
}


# ----------------------------------------------------------------------------
# Document -> JSON
# ----------------------------------------------------------------------------

def _destination_to_json(dest: Destination) -> dict:
    if isinstance(dest, NodeRef):
        return {'type': 'node', 'name': dest.name}
    if isinstance(dest, FileTransfer):
        return {'type': 'transfer', 'file': dest.file, 'node': dest.node}
    if isinstance(dest, Dynamic):
        return {'type': 'dynamic', 'variable': dest.variable}
    return {'type': 'exit'}


def _content_to_json(element: ContentElement) -> dict:
    if isinstance(element, Call):
        return {'type': 'call', 'function': element.function, 'bindings': list(element.bindings)}
    return {'type': 'text', 'text': element.text}


def _branch_to_json(branch: Branch) -> dict:
    if isinstance(branch, Option):
        data = {'type': 'option', 'keywords': sorted(branch.keywords)}
    elif isinstance(branch, Condition):
        data = {'type': 'condition', 'variable': branch.variable}
    else:
        data = {'type': 'jump'}
    data['destination'] = _destination_to_json(branch.destination)
    return data


def document_to_json(document: Document) -> dict:
    """Convert a Document to a JSON-serializable dict."""
    meta = document.metadata
    return {
        'format': FORMAT_VERSION,
        'name': document.name,
        'metadata': {
            'topic': meta.topic,
            'description': meta.description,
            'author': meta.author,
            'version': meta.version,
            'required': list(meta.required) if meta.required is not None else None,
            'extra': dict(meta.extra),
        },
        'declares_global': document.declares_global,
        'local_vars': document.local_defaults,
        'global_vars': document.global_defaults,
        'nodes': [
            {
                'name': node.name,
                'line': node.line,
                'content': [_content_to_json(c) for c in node.content],
                'branches': [_branch_to_json(b) for b in node.branches],
            }
            for node in document.nodes.values()
        ],
    }


# ----------------------------------------------------------------------------
# JSON -> Document
# ----------------------------------------------------------------------------

def _destination_from_json(data: dict) -> Destination:
    kind = data['type']
    if kind == 'node':
        return NodeRef(data['name'])
    if kind == 'transfer':
        return FileTransfer(data['file'], data['node'])
    if kind == 'dynamic':
        return Dynamic(data['variable'])
    return EXIT


def _content_from_json(data: dict) -> ContentElement:
    if data['type'] == 'call':
        return Call(data['function'], tuple(data['bindings']))
    return Text(data['text'])


def _branch_from_json(data: dict) -> Branch:
    destination = _destination_from_json(data['destination'])
    if data['type'] == 'option':
        return Option(frozenset(data['keywords']), destination)
    if data['type'] == 'condition':
        return Condition(data['variable'], destination)
    return Jump(destination)


def document_from_json(data: dict[str, Any]) -> Document:
    """
    Build a Document from compiled JSON.

    Raises:
        jsonschema.ValidationError: If the data doesn't match DOCUMENT_SCHEMA
    """
    jsonschema.validate(instance=data, schema=DOCUMENT_SCHEMA)

    meta = data['metadata']
    required = meta.get('required')
    metadata = Metadata(
        topic=meta['topic'],
        description=meta['description'],
        author=meta['author'],
        version=meta['version'],
        required=tuple(required) if required is not None else None,
        extra=dict(meta.get('extra', {})),
    )

    nodes: dict[str, Node] = {}
    for node_data in data['nodes']:
        node = Node(
            name=node_data['name'],
            content=tuple(_content_from_json(c) for c in node_data['content']),
            branches=tuple(_branch_from_json(b) for b in node_data['branches']),
            line=node_data.get('line', 0),
        )
        nodes[node.name] = node

    return Document(
        name=data['name'],
        metadata=metadata,
        declares_global=data['declares_global'],
        local_defaults=dict(data.get('local_vars', {})),
        global_defaults=dict(data.get('global_vars', {})),
        nodes=nodes,
    )


def save_json(document: Document, path: str | Path) -> None:
    """Save a Document as JSON."""
    path = Path(path)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(document_to_json(document), f, indent=2)


def load_json(path: str | Path) -> Document:
    """Load a compiled Document from JSON."""
    path = Path(path)
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return document_from_json(data)


def compile_script_file(
    input_path: str | Path,
    output_path: Optional[str | Path] = None,
    is_entry_file: bool = False,
) -> Path:
    """
    Compile a .bdl script to JSON.

    Args:
        input_path: Path to the .bdl file
        output_path: Path to the output .json file (default: same name with .json)
        is_entry_file: Parse as the entry file (allows $global_vars)

    Returns:
        The path written
    """
    input_path = Path(input_path)
    if output_path is None:
        output_path = input_path.with_suffix('.json')
    else:
        output_path = Path(output_path)

    document = ScriptParser(input_path.name, is_entry_file).parse_file(input_path)
    save_json(document, output_path)
    logger.info("Compiled %s -> %s", input_path, output_path)
    return output_path
