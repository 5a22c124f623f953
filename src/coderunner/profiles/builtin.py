"""Built-in language profiles.

One profile per ``coderunner-<language>`` sandbox image.  Every image
creates a ``coderunner`` user (uid 1000), owns ``/app`` and switches to that
user, so the profiles below run as uid/gid 1000 in ``/app``.
"""

from __future__ import annotations

from coderunner.profiles.models import ExecutionProfile

_MiB = 1024 * 1024

JAVA = ExecutionProfile(
    language="java",
    display_name="Java",
    image="coderunner-java:latest",
    source_name="{main_class}.java",
    main_class_pattern=r"public\s+(?:final\s+|abstract\s+)*class\s+(\w+)",
    compile_command=("javac", "{source}"),
    run_command=("java", "-cp", ".", "{main_class}"),
    # The JVM needs headroom above its 128m heap.
    memory_limit=256 * _MiB,
    env={"JAVA_TOOL_OPTIONS": "-Xmx128m -Xms32m"},
    stderr_filters=(r"^Picked up JAVA_TOOL_OPTIONS",),
    memory_error_patterns=("java.lang.OutOfMemoryError",),
    limit_address_space=False,
)

C = ExecutionProfile(
    language="c",
    display_name="C",
    image="coderunner-c:latest",
    source_name="code.c",
    compile_command=("gcc", "{source}", "-o", "program", "-std=c11"),
    run_command=("./program",),
)

CPP = ExecutionProfile(
    language="cpp",
    display_name="C++",
    aliases=("c++",),
    image="coderunner-cpp:latest",
    source_name="code.cpp",
    compile_command=("g++", "{source}", "-o", "program", "-std=c++17"),
    run_command=("./program",),
)

PYTHON = ExecutionProfile(
    language="python",
    display_name="Python",
    aliases=("py", "python3"),
    image="coderunner-python:latest",
    source_name="code.py",
    run_command=("python3", "{source}"),
    env={"PYTHONUNBUFFERED": "1", "PYTHONDONTWRITEBYTECODE": "1"},
    memory_error_patterns=("MemoryError",),
)

JAVASCRIPT = ExecutionProfile(
    language="javascript",
    display_name="JavaScript",
    aliases=("js", "node"),
    image="coderunner-js:latest",
    source_name="code.js",
    run_command=("node", "{source}"),
    memory_error_patterns=("JavaScript heap out of memory",),
    # V8 reserves far more virtual memory than it uses.
    limit_address_space=False,
)

BUILTIN_PROFILES: tuple[ExecutionProfile, ...] = (JAVA, C, CPP, PYTHON, JAVASCRIPT)
