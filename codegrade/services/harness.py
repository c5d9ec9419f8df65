"""Test harness templates - drivers appended to user code for each language

Every driver calls the user's ``solution`` entry point once per test case,
compares ``str(result).strip()`` with the trimmed expected output, and finally
prints two lines to stdout: the job's marker and a single JSON line

    {"passed": <int>, "total": <int>, "output": "<log>", "tests": [...]}

Faults raised inside the comparison loop are caught by the driver so the
marker and JSON are always printed (with ``passed`` set to 0).
"""

from __future__ import annotations

import json
import uuid
from string import Template
from typing import Callable, Sequence

ENTRY_POINT = "solution"
MARKER_PREFIX = "__CODEGRADE_VERDICT_"


def new_marker() -> str:
    """Per-job sentinel line; user programs cannot guess it."""
    return f"{MARKER_PREFIX}{uuid.uuid4().hex}__"


def json_string_literal(value: str) -> str:
    """
    Double-quoted literal valid in JavaScript, Python, Java, C#, Go and C++.

    Only \\" \\\\ \\b \\f \\n \\r \\t and \\u00XX (for the remaining control
    characters) are produced, which all of these languages accept.
    """
    return json.dumps(value, ensure_ascii=False)


def rust_string_literal(value: str) -> str:
    out = []
    for ch in value:
        code = ord(ch)
        if ch == "\\":
            out.append("\\\\")
        elif ch == '"':
            out.append('\\"')
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            out.append("\\r")
        elif ch == "\t":
            out.append("\\t")
        elif code < 0x20 or code == 0x7F:
            out.append("\\u{%x}" % code)
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def inject(
    template: Template,
    code: str,
    inputs: Sequence[str],
    expected: Sequence[str],
    marker: str,
    quote: Callable[[str], str] = json_string_literal,
    **extras: str,
) -> str:
    """
    Fill a harness template.

    Args:
        template: Language template with $code, $inputs, $expected, $marker
        code: User code (inserted verbatim)
        inputs: Test inputs, in order
        expected: Expected outputs, same length as inputs
        marker: Job marker line
        quote: Language string-literal encoder
        extras: Additional language-specific substitutions

    Returns:
        Final source text
    """
    return template.substitute(
        code=code,
        inputs=", ".join(quote(value) for value in inputs),
        expected=", ".join(quote(value) for value in expected),
        marker=marker,
        **extras,
    )


JAVASCRIPT_HARNESS = Template(r"""$code

;(function () {
  const inputs = [$inputs];
  const expected = [$expected];
  let passed = 0;
  let log = '';
  const tests = [];
  let payload;
  try {
    for (let i = 0; i < inputs.length; i++) {
      const actual = String(solution(inputs[i])).trim();
      const want = String(expected[i]).trim();
      const ok = actual === want;
      if (ok) passed++;
      log += 'Test ' + (i + 1) + ': ' + (ok ? 'PASS' : 'FAIL') + '\n';
      tests.push({ index: i + 1, input: inputs[i], expected: want, actual: actual, passed: ok });
    }
    payload = { passed: passed, total: inputs.length, output: log, tests: tests };
  } catch (error) {
    const message = error && error.message ? error.message : String(error);
    payload = { passed: 0, total: inputs.length, output: message, tests: [] };
  }
  console.log('$marker');
  console.log(JSON.stringify(payload));
})();
""")


PYTHON_HARNESS = Template(r"""$code


def _codegrade_harness():
    import json

    inputs = [$inputs]
    expected = [$expected]
    passed = 0
    log = ""
    tests = []
    try:
        for index, (case_input, case_expected) in enumerate(zip(inputs, expected), start=1):
            actual = str(solution(case_input)).strip()
            want = case_expected.strip()
            ok = actual == want
            if ok:
                passed += 1
            log += "Test %d: %s\n" % (index, "PASS" if ok else "FAIL")
            tests.append({"index": index, "input": case_input, "expected": want, "actual": actual, "passed": ok})
        payload = {"passed": passed, "total": len(inputs), "output": log, "tests": tests}
    except BaseException as exc:
        payload = {"passed": 0, "total": len(inputs), "output": "%s: %s" % (type(exc).__name__, exc), "tests": []}
    print("$marker")
    print(json.dumps(payload), flush=True)


_codegrade_harness()
""")


JAVA_HARNESS = Template(r"""$code

class __CodegradeHarness {
    private static String escape(String s) {
        StringBuilder sb = new StringBuilder();
        for (int i = 0; i < s.length(); i++) {
            char c = s.charAt(i);
            switch (c) {
                case '"': sb.append("\\\""); break;
                case '\\': sb.append("\\\\"); break;
                case '\n': sb.append("\\n"); break;
                case '\r': sb.append("\\r"); break;
                case '\t': sb.append("\\t"); break;
                default:
                    if (c < 0x20) {
                        sb.append(String.format("\\u%04x", (int) c));
                    } else {
                        sb.append(c);
                    }
            }
        }
        return sb.toString();
    }

    public static void main(String[] args) {
        String[] inputs = { $inputs };
        String[] expected = { $expected };
        int passed = 0;
        StringBuilder log = new StringBuilder();
        StringBuilder tests = new StringBuilder();
        String payload;
        try {
            String[] candidates = { $class_names };
            Class<?> cls = null;
            java.lang.reflect.Method method = null;
            for (String name : candidates) {
                try {
                    Class<?> candidate = Class.forName(name);
                    method = candidate.getDeclaredMethod("solution", String.class);
                    cls = candidate;
                    break;
                } catch (ClassNotFoundException | NoSuchMethodException e) {
                    // try the next top-level class
                }
            }
            if (method == null) {
                throw new NoSuchMethodException("No method solution(String) found");
            }
            method.setAccessible(true);
            Object receiver = null;
            if (!java.lang.reflect.Modifier.isStatic(method.getModifiers())) {
                java.lang.reflect.Constructor<?> ctor = cls.getDeclaredConstructor();
                ctor.setAccessible(true);
                receiver = ctor.newInstance();
            }
            for (int i = 0; i < inputs.length; i++) {
                String actual = String.valueOf(method.invoke(receiver, inputs[i])).trim();
                String want = expected[i].trim();
                boolean ok = actual.equals(want);
                if (ok) passed++;
                log.append("Test ").append(i + 1).append(": ").append(ok ? "PASS" : "FAIL").append("\n");
                if (i > 0) tests.append(",");
                tests.append("{\"index\":").append(i + 1)
                    .append(",\"input\":\"").append(escape(inputs[i]))
                    .append("\",\"expected\":\"").append(escape(want))
                    .append("\",\"actual\":\"").append(escape(actual))
                    .append("\",\"passed\":").append(ok).append("}");
            }
            payload = "{\"passed\":" + passed + ",\"total\":" + inputs.length
                + ",\"output\":\"" + escape(log.toString()) + "\",\"tests\":[" + tests + "]}";
        } catch (Throwable t) {
            Throwable cause = t;
            if (t instanceof java.lang.reflect.InvocationTargetException && t.getCause() != null) {
                cause = t.getCause();
            }
            payload = "{\"passed\":0,\"total\":" + inputs.length
                + ",\"output\":\"" + escape(String.valueOf(cause)) + "\",\"tests\":[]}";
        }
        System.out.println("$marker");
        System.out.println(payload);
    }
}
""")


CPP_HARNESS = Template(r"""$main_prefix
$code
$main_suffix

#include <cstdio>
#include <exception>
#include <iostream>
#include <sstream>
#include <string>
#include <vector>

namespace __codegrade_harness {
    static std::string escape(const std::string& s) {
        std::string out;
        out.reserve(s.size());
        for (char c : s) {
            switch (c) {
                case '\\': out += "\\\\"; break;
                case '"': out += "\\\""; break;
                case '\n': out += "\\n"; break;
                case '\r': out += "\\r"; break;
                case '\t': out += "\\t"; break;
                default:
                    if (static_cast<unsigned char>(c) < 0x20) {
                        char buf[8];
                        std::snprintf(buf, sizeof(buf), "\\u%04x", static_cast<unsigned>(static_cast<unsigned char>(c)));
                        out += buf;
                    } else {
                        out += c;
                    }
                    break;
            }
        }
        return out;
    }

    static std::string trim(const std::string& s) {
        const char* ws = " \t\n\r\f\v";
        std::string::size_type begin = s.find_first_not_of(ws);
        if (begin == std::string::npos) return "";
        std::string::size_type end = s.find_last_not_of(ws);
        return s.substr(begin, end - begin + 1);
    }

    template <typename T>
    std::string stringify(const T& value) {
        std::ostringstream oss;
        oss << std::boolalpha << value;
        return oss.str();
    }
}

int main() {
    const std::vector<std::string> inputs = { $inputs };
    const std::vector<std::string> expected = { $expected };
    int passed = 0;
    std::string log;
    std::string tests;
    std::string payload;
    try {
        for (std::size_t i = 0; i < inputs.size(); ++i) {
            std::string actual = __codegrade_harness::trim(__codegrade_harness::stringify(solution(inputs[i])));
            std::string want = __codegrade_harness::trim(expected[i]);
            bool ok = actual == want;
            if (ok) ++passed;
            log += "Test " + std::to_string(i + 1) + ": " + (ok ? "PASS" : "FAIL") + "\n";
            if (i > 0) tests += ",";
            tests += "{\"index\":" + std::to_string(i + 1)
                + ",\"input\":\"" + __codegrade_harness::escape(inputs[i])
                + "\",\"expected\":\"" + __codegrade_harness::escape(want)
                + "\",\"actual\":\"" + __codegrade_harness::escape(actual)
                + "\",\"passed\":" + (ok ? "true" : "false") + "}";
        }
        payload = "{\"passed\":" + std::to_string(passed) + ",\"total\":" + std::to_string(inputs.size())
            + ",\"output\":\"" + __codegrade_harness::escape(log) + "\",\"tests\":[" + tests + "]}";
    } catch (const std::exception& e) {
        payload = "{\"passed\":0,\"total\":" + std::to_string(inputs.size())
            + ",\"output\":\"" + __codegrade_harness::escape(e.what()) + "\",\"tests\":[]}";
    } catch (...) {
        payload = "{\"passed\":0,\"total\":" + std::to_string(inputs.size())
            + ",\"output\":\"Unknown exception\",\"tests\":[]}";
    }
    std::cout << "$marker" << std::endl;
    std::cout << payload << std::endl;
    return 0;
}
""")


CSHARP_HARNESS = Template(r"""$code

public static class __CodegradeHarness
{
    private static string Escape(string s)
    {
        var sb = new System.Text.StringBuilder();
        foreach (char c in s ?? "")
        {
            switch (c)
            {
                case '"': sb.Append("\\\""); break;
                case '\\': sb.Append("\\\\"); break;
                case '\n': sb.Append("\\n"); break;
                case '\r': sb.Append("\\r"); break;
                case '\t': sb.Append("\\t"); break;
                default:
                    if (c < ' ') sb.Append("\\u").Append(((int)c).ToString("x4"));
                    else sb.Append(c);
                    break;
            }
        }
        return sb.ToString();
    }

    private static object Invoke(string input)
    {
        var flags = System.Reflection.BindingFlags.Public | System.Reflection.BindingFlags.NonPublic |
                    System.Reflection.BindingFlags.Static | System.Reflection.BindingFlags.Instance;
        foreach (var type in typeof(__CodegradeHarness).Assembly.GetTypes())
        {
            if (type == typeof(__CodegradeHarness) || type.ContainsGenericParameters) continue;
            foreach (string name in new[] { "solution", "Solution" })
            {
                var method = type.GetMethod(name, flags, null, new[] { typeof(string) }, null);
                if (method == null) continue;
                object receiver = method.IsStatic ? null : System.Activator.CreateInstance(type, true);
                return method.Invoke(receiver, new object[] { input });
            }
        }
        throw new System.MissingMethodException("No method solution(string) found");
    }

    public static void Main(string[] args)
    {
        string[] inputs = { $inputs };
        string[] expected = { $expected };
        int passed = 0;
        var log = new System.Text.StringBuilder();
        var tests = new System.Collections.Generic.List<string>();
        string payload;
        try
        {
            for (int i = 0; i < inputs.Length; i++)
            {
                object result = Invoke(inputs[i]);
                string actual = (System.Convert.ToString(result, System.Globalization.CultureInfo.InvariantCulture) ?? "").Trim();
                string want = expected[i].Trim();
                bool ok = actual == want;
                if (ok) passed++;
                log.Append("Test ").Append(i + 1).Append(": ").Append(ok ? "PASS" : "FAIL").Append("\n");
                tests.Add("{\"index\":" + (i + 1)
                    + ",\"input\":\"" + Escape(inputs[i])
                    + "\",\"expected\":\"" + Escape(want)
                    + "\",\"actual\":\"" + Escape(actual)
                    + "\",\"passed\":" + (ok ? "true" : "false") + "}");
            }
            payload = "{\"passed\":" + passed + ",\"total\":" + inputs.Length
                + ",\"output\":\"" + Escape(log.ToString()) + "\",\"tests\":[" + string.Join(",", tests) + "]}";
        }
        catch (System.Exception e)
        {
            System.Exception cause = e;
            if (e is System.Reflection.TargetInvocationException && e.InnerException != null)
            {
                cause = e.InnerException;
            }
            payload = "{\"passed\":0,\"total\":" + inputs.Length
                + ",\"output\":\"" + Escape(cause.GetType().Name + ": " + cause.Message) + "\",\"tests\":[]}";
        }
        System.Console.WriteLine("$marker");
        System.Console.WriteLine(payload);
    }
}
""")


# Go forbids imports after declarations, so the adapter places GO_HARNESS_IMPORTS
# right after the package clause. Aliases avoid clashing with the user's imports.
GO_HARNESS_IMPORTS = """
import (
	__fmt "fmt"
	__json "encoding/json"
	__os "os"
	__strings "strings"
)
"""

GO_HARNESS = Template(r"""$code

type __codegradeTest struct {
	Index    int    `json:"index"`
	Input    string `json:"input"`
	Expected string `json:"expected"`
	Actual   string `json:"actual"`
	Passed   bool   `json:"passed"`
}

type __codegradeVerdict struct {
	Passed int               `json:"passed"`
	Total  int               `json:"total"`
	Output string            `json:"output"`
	Tests  []__codegradeTest `json:"tests"`
}

func __codegradeEmit(verdict __codegradeVerdict) {
	data, err := __json.Marshal(verdict)
	if err != nil {
		data = []byte(`{"passed":0,"total":0,"output":"unable to encode verdict","tests":[]}`)
	}
	__fmt.Println("$marker")
	__fmt.Println(string(data))
}

func __codegradeRun() {
	inputs := []string{$inputs}
	expected := []string{$expected}
	verdict := __codegradeVerdict{Total: len(inputs), Tests: []__codegradeTest{}}
	defer func() {
		if r := recover(); r != nil {
			__codegradeEmit(__codegradeVerdict{Total: len(inputs), Output: __fmt.Sprint(r), Tests: []__codegradeTest{}})
		}
		__os.Exit(0)
	}()
	var log __strings.Builder
	for i := range inputs {
		actual := __strings.TrimSpace(__fmt.Sprint(solution(inputs[i])))
		want := __strings.TrimSpace(expected[i])
		ok := actual == want
		status := "FAIL"
		if ok {
			verdict.Passed++
			status = "PASS"
		}
		log.WriteString(__fmt.Sprintf("Test %d: %s\n", i+1, status))
		verdict.Tests = append(verdict.Tests, __codegradeTest{Index: i + 1, Input: inputs[i], Expected: want, Actual: actual, Passed: ok})
	}
	verdict.Output = log.String()
	__codegradeEmit(verdict)
}

// Runs before the user's main (if any) and exits the process.
func init() {
	__codegradeRun()
}
$main_stub
""")


RUST_HARNESS = Template(r"""$code

fn __codegrade_escape(s: &str) -> String {
    let mut out = String::with_capacity(s.len());
    for c in s.chars() {
        match c {
            '"' => out.push_str("\\\""),
            '\\' => out.push_str("\\\\"),
            '\n' => out.push_str("\\n"),
            '\r' => out.push_str("\\r"),
            '\t' => out.push_str("\\t"),
            c if (c as u32) < 0x20 => out.push_str(&format!("\\u{:04x}", c as u32)),
            c => out.push(c),
        }
    }
    out
}

fn main() {
    let inputs: Vec<&str> = vec![$inputs];
    let expected: Vec<&str> = vec![$expected];
    let outcome = std::panic::catch_unwind(std::panic::AssertUnwindSafe(|| {
        let mut passed = 0usize;
        let mut log = String::new();
        let mut tests: Vec<String> = Vec::new();
        for i in 0..inputs.len() {
            let actual = format!("{}", solution(inputs[i])).trim().to_string();
            let want = expected[i].trim().to_string();
            let ok = actual == want;
            if ok {
                passed += 1;
            }
            log.push_str(&format!("Test {}: {}\n", i + 1, if ok { "PASS" } else { "FAIL" }));
            tests.push(format!(
                "{{\"index\":{},\"input\":\"{}\",\"expected\":\"{}\",\"actual\":\"{}\",\"passed\":{}}}",
                i + 1,
                __codegrade_escape(inputs[i]),
                __codegrade_escape(&want),
                __codegrade_escape(&actual),
                ok
            ));
        }
        (passed, log, tests)
    }));
    let payload = match outcome {
        Ok((passed, log, tests)) => format!(
            "{{\"passed\":{},\"total\":{},\"output\":\"{}\",\"tests\":[{}]}}",
            passed,
            inputs.len(),
            __codegrade_escape(&log),
            tests.join(",")
        ),
        Err(cause) => {
            let message = if let Some(s) = cause.downcast_ref::<&str>() {
                s.to_string()
            } else if let Some(s) = cause.downcast_ref::<String>() {
                s.clone()
            } else {
                "panic".to_string()
            };
            format!(
                "{{\"passed\":0,\"total\":{},\"output\":\"{}\",\"tests\":[]}}",
                inputs.len(),
                __codegrade_escape(&message)
            )
        }
    };
    println!("$marker");
    println!("{}", payload);
}
""")
