"""
Pipeline definition files: procedures, sequential '{ }' and parallel '{{ }}'
blocks of shell commands, configuration variables.

    from pipedsl import load_pipeline

    pipeline = load_pipeline("build.pipe")
    for item in pipeline.get_block("build").items:
        ...
"""

from .dsl_ast import Block, BlockRef, CommandItem, ProcArgs, ProcItem, Procedure, ShellItem, item_type
from .dsl_converter import dump, pipeline_to_dict, pipeline_to_text, pipeline_to_yaml
from .dsl_lexer import ArgList, LexerError, MalformedInputError, UnfinishedInputError, tokenize, unquote_word
from .dsl_lines import tokenize_command
from .dsl_parser import ConfigError, LoadContext, ParseError
from .dsl_validate import ValidationError, ValidationResult, promote_proc_calls, validate_pipeline
from .pipe_file import PipeFile
from .pipeline import Pipeline, load_pipeline
from .system import FileSystem, LocalFileSystem, PosixShellEncoder, ShellEncoder

__version__ = "0.1.0"

__all__ = [
    "ArgList", "Block", "BlockRef", "CommandItem", "ConfigError", "FileSystem",
    "LexerError", "LoadContext", "LocalFileSystem", "MalformedInputError", "ParseError",
    "PipeFile", "Pipeline", "PosixShellEncoder", "ProcArgs", "ProcItem", "Procedure",
    "ShellEncoder", "ShellItem", "UnfinishedInputError", "ValidationError",
    "ValidationResult", "dump", "item_type", "load_pipeline", "pipeline_to_dict",
    "pipeline_to_text", "pipeline_to_yaml", "promote_proc_calls", "tokenize",
    "tokenize_command", "unquote_word", "validate_pipeline",
]
