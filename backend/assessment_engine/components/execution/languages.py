"""Language table for the Judge0 sandbox: ids, aliases, templates, input hints."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Language:
    name: str
    judge0_id: int
    extension: str
    default_code: str
    input_patterns: Tuple[str, ...] = field(default_factory=tuple)


LANGUAGES: Dict[str, Language] = {
    "Python": Language(
        "Python", 71, "py",
        'print("Hello, World!")\n',
        ("input(", "raw_input(", "sys.stdin"),
    ),
    "JavaScript": Language(
        "JavaScript", 63, "js",
        'console.log("Hello, World!");\n',
        ("readline", "prompt(", "process.stdin"),
    ),
    "Java": Language(
        "Java", 62, "java",
        "public class Main {\n"
        "    public static void main(String[] args) {\n"
        '        System.out.println("Hello, World!");\n'
        "    }\n"
        "}\n",
        ("Scanner", "nextLine(", "nextInt(", "nextDouble(", "nextFloat(", "next()", "System.in", "BufferedReader"),
    ),
    "C++": Language(
        "C++", 54, "cpp",
        "#include <iostream>\n\nint main() {\n    std::cout << \"Hello, World!\" << std::endl;\n    return 0;\n}\n",
        ("cin >>", "getline(", "cin.get(", "cin.getline(", "cin.read("),
    ),
    "C": Language(
        "C", 50, "c",
        '#include <stdio.h>\n\nint main() {\n    printf("Hello, World!\\n");\n    return 0;\n}\n',
        ("scanf(", "gets(", "fgets(", "getchar(", "fgetc("),
    ),
    "Go": Language(
        "Go", 60, "go",
        'package main\n\nimport "fmt"\n\nfunc main() {\n    fmt.Println("Hello, World!")\n}\n',
        ("fmt.Scan", "bufio.Reader", "bufio.Scanner"),
    ),
    "Ruby": Language(
        "Ruby", 72, "rb",
        'puts "Hello, World!"\n',
        ("gets", "STDIN.gets", "ARGF.gets"),
    ),
    "PHP": Language(
        "PHP", 68, "php",
        '<?php\necho "Hello, World!\\n";\n',
        ("fgets(", "readline(", "fscanf(", "fgetc(", "stream_get_line("),
    ),
    "Rust": Language(
        "Rust", 73, "rs",
        'fn main() {\n    println!("Hello, World!");\n}\n',
    ),
    "Swift": Language("Swift", 83, "swift", 'print("Hello, World!")\n'),
    "Kotlin": Language("Kotlin", 78, "kt", 'fun main() {\n    println("Hello, World!")\n}\n'),
    "TypeScript": Language("TypeScript", 74, "ts", 'console.log("Hello, World!");\n'),
    "C#": Language(
        "C#", 51, "cs",
        'using System;\n\nclass Program\n{\n    static void Main()\n    {\n        Console.WriteLine("Hello, World!");\n    }\n}\n',
    ),
    "Scala": Language(
        "Scala", 81, "scala",
        'object Main {\n  def main(args: Array[String]): Unit = {\n    println("Hello, World!")\n  }\n}\n',
    ),
    "Perl": Language("Perl", 85, "pl", 'print "Hello, World!\\n";\n'),
    "Haskell": Language("Haskell", 61, "hs", 'main :: IO ()\nmain = putStrLn "Hello, World!"\n'),
}

LANGUAGE_ALIASES: Dict[str, str] = {
    "py": "Python",
    "python3": "Python",
    "js": "JavaScript",
    "nodejs": "JavaScript",
    "node": "JavaScript",
    "cpp": "C++",
    "cplusplus": "C++",
    "golang": "Go",
    "rb": "Ruby",
    "ts": "TypeScript",
    "csharp": "C#",
    "cs": "C#",
}

_BY_LOWER_NAME = {name.lower(): name for name in LANGUAGES}

_PUBLIC_CLASS_RE = re.compile(r"public\s+class\s+(\w+)")


def supported_languages() -> List[str]:
    return list(LANGUAGES)


def resolve_language(label: str | None) -> Optional[Language]:
    """Resolve a user-facing label or alias ("py", "C++", "cpp") to a Language."""
    key = (label or "").strip().lower()
    if not key:
        return None
    name = _BY_LOWER_NAME.get(key) or LANGUAGE_ALIASES.get(key)
    return LANGUAGES.get(name) if name else None


def default_code_for(label: str | None) -> str:
    language = resolve_language(label)
    return language.default_code if language else ""


def detect_input_requirement(source_code: str, language: Language) -> bool:
    """Keyword scan for known interactive-input calls."""
    return any(pattern in source_code for pattern in language.input_patterns)


def preprocess_java_source(source_code: str) -> str:
    """The sandbox compiles Java as Main.java; drop `public` from a differently named class."""
    match = _PUBLIC_CLASS_RE.search(source_code)
    if match and match.group(1) != "Main":
        return _PUBLIC_CLASS_RE.sub(r"class \1", source_code, count=1)
    return source_code
