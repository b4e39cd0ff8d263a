"""Shell completion scripts generated from the argparse parser."""

import argparse

SHELLS = ("bash", "zsh", "fish")


def _option_strings(parser):
    opts = []
    for action in parser._actions:
        if isinstance(action, argparse._SubParsersAction):
            continue
        opts.extend(s for s in action.option_strings if s.startswith("--"))
    return opts


def _choices(parser):
    """Map each long option with fixed choices to those choices."""
    found = {}
    for action in parser._actions:
        if action.choices and action.option_strings and not isinstance(action, argparse._SubParsersAction):
            for s in action.option_strings:
                found[s] = [str(c) for c in action.choices]
    return found


def _subcommands(parser):
    for action in parser._actions:
        if isinstance(action, argparse._SubParsersAction):
            return dict(action.choices)
    return {}


def bash_script(parser, prog):
    subs = _subcommands(parser)
    func = "_" + prog.replace("-", "_")
    lines = [
        f"# bash completion for {prog}",
        f"{func}() {{",
        '    local cur prev words cword',
        '    cur="${COMP_WORDS[COMP_CWORD]}"',
        '    prev="${COMP_WORDS[COMP_CWORD-1]}"',
        '    local cmd=""',
        '    local i',
        '    for ((i=1; i<COMP_CWORD; i++)); do',
        '        case "${COMP_WORDS[i]}" in',
        f'            {"|".join(subs)}) cmd="${{COMP_WORDS[i]}}"; break;;',
        '        esac',
        '    done',
        '    case "$cmd" in',
    ]
    for name, sub in subs.items():
        lines.append(f'        {name})')
        for opt, values in _choices(sub).items():
            lines.append(f'            if [[ "$prev" == "{opt}" ]]; then COMPREPLY=($(compgen -W "{" ".join(values)}" -- "$cur")); return; fi')
        if name == "completions":
            lines.append(f'            COMPREPLY=($(compgen -W "{" ".join(SHELLS)}" -- "$cur")); return;;')
        else:
            lines.append(f'            COMPREPLY=($(compgen -W "{" ".join(_option_strings(sub))}" -- "$cur")); return;;')
    lines.append('        *)')
    for opt, values in _choices(parser).items():
        lines.append(f'            if [[ "$prev" == "{opt}" ]]; then COMPREPLY=($(compgen -W "{" ".join(values)}" -- "$cur")); return; fi')
    words = list(subs) + _option_strings(parser)
    lines += [
        f'            COMPREPLY=($(compgen -W "{" ".join(words)}" -- "$cur")); return;;',
        '    esac',
        '}',
        f'complete -F {func} {prog}',
    ]
    return "\n".join(lines) + "\n"


def _help_text(action):
    return (action.help or "").replace("'", "").replace(":", "\\:").replace("[", "(").replace("]", ")")


def zsh_script(parser, prog):
    subs = _subcommands(parser)
    lines = [
        f"#compdef {prog}",
        "",
        f"_{prog}() {{",
        "    local -a commands",
        "    commands=(",
    ]
    for name, sub in subs.items():
        desc = (sub.description or "").replace("'", "").replace(":", "\\:")
        lines.append(f"        '{name}:{desc}'")
    lines += [
        "    )",
        "    if (( CURRENT == 2 )); then",
        "        _describe 'command' commands",
        "        _files",
        "        return",
        "    fi",
        "    case $words[2] in",
    ]
    for name, sub in subs.items():
        specs = []
        for action in sub._actions:
            for s in action.option_strings:
                if not s.startswith("--"):
                    continue
                if action.choices:
                    specs.append(f"'{s}[{_help_text(action)}]:value:({' '.join(str(c) for c in action.choices)})'")
                else:
                    specs.append(f"'{s}[{_help_text(action)}]'")
        if name == "completions":
            specs.append(f"'1:shell:({' '.join(SHELLS)})'")
        lines.append(f"        {name}) _arguments {' '.join(specs)} ;;")
    lines += [
        "    esac",
        "}",
        "",
        f'_{prog} "$@"',
    ]
    return "\n".join(lines) + "\n"


def fish_script(parser, prog):
    subs = _subcommands(parser)
    names = " ".join(subs)
    lines = [f"# fish completion for {prog}", f"complete -c {prog} -f"]
    for name, sub in subs.items():
        desc = (sub.description or "").replace("'", "")
        lines.append(f"complete -c {prog} -n 'not __fish_seen_subcommand_from {names}' -a {name} -d '{desc}'")
        for action in sub._actions:
            for s in action.option_strings:
                if not s.startswith("--"):
                    continue
                line = f"complete -c {prog} -n '__fish_seen_subcommand_from {name}' -l {s[2:]}"
                if action.choices:
                    line += f" -xa '{' '.join(str(c) for c in action.choices)}'"
                if action.help:
                    line += f" -d '{action.help.replace(chr(39), '')}'"
                lines.append(line)
    lines.append(f"complete -c {prog} -n '__fish_seen_subcommand_from completions' -xa '{' '.join(SHELLS)}'")
    return "\n".join(lines) + "\n"


def generate(shell, parser, prog="portzap"):
    if shell == "bash":
        return bash_script(parser, prog)
    if shell == "zsh":
        return zsh_script(parser, prog)
    if shell == "fish":
        return fish_script(parser, prog)
    raise ValueError(f"unsupported shell: {shell}")
