# classes/base_utils.py

import logging
import re
from collections import OrderedDict

import commentjson
import yaml
from json_repair import repair_json


logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)s | %(name)s\n%(message)s\n"
)

logger = logging.getLogger("vicebot_backend")


class BaseUtils():

    # -----------------------
    # General Utils
    # -----------------------

    def color_print(self, text, color=None):
        COLOR_CODES = {
            'black': '30', 'red': '31', 'green': '32', 'yellow': '33', 'blue': '34', 'magenta': '35',
            'cyan': '36', 'white': '37', 'bright_black': '90', 'bright_red': '91', 'bright_green': '92',
            'bright_yellow': '93', 'bright_blue': '94', 'bright_magenta': '95', 'bright_cyan': '96', 'bright_white': '97'
        }
        if color and color.lower() in COLOR_CODES:
            text = f"\033[{COLOR_CODES[color.lower()]}m{text}\033[0m"
        logger.info(str(text))
        return False

    def clean_triple_backticks(self, code) -> str:
        pattern = r'```[a-zA-Z]*\n?|```\n?'
        return re.sub(pattern, '', code or "")

    def unsafe_string_format(self, dest_string, print_unused_keys_report=True, **kwargs):
        """
        Replace only the {PLACEHOLDERS} passed in kwargs; any other brace
        group (JSON examples inside prompts) is left untouched.
        """
        missing_keys = []

        def replacer(match):
            key = match.group(1)
            if key in kwargs:
                return str(kwargs[key])
            missing_keys.append(key)
            return match.group(0)

        result = re.compile(r'\{(\w+)\}').sub(replacer, dest_string)
        if missing_keys and print_unused_keys_report:
            logger.debug(f"Missing keys within string-to-format in unsafe_string_format: {', '.join(missing_keys)}")
        return result

    # -----------------------
    # Fault tolerant JSON
    # -----------------------

    def _sanitize_json_string(self, input_str: str) -> str:
        """
        Strip code fences and // or /* */ comments, then escape raw newlines
        and stray quotes inside string literals so YAML can take a second pass.
        """
        def process_string_segment(match):
            content = match.group(1)
            content = re.sub(r'(?<!\\)\\(?![bfnrtu"\\/])', r'\\\\', content)
            content = re.sub(r'(?<!\\)\n', r'\\n', content)
            content = re.sub(r'(?<!\\)"', r'\"', content)
            return f'"{content}"'

        input_str = self.clean_triple_backticks(input_str)
        input_str = re.sub(r'//.*?$|/\*.*?\*/', '', input_str, flags=re.MULTILINE | re.DOTALL)
        return re.sub(r'(?<!\\)"((?:[^"\\]|\\.)*?)"', process_string_segment, input_str, flags=re.DOTALL)

    def _load_json_attempt(self, json_str: str, ensure_ordered: bool):
        err = ""
        try:
            if ensure_ordered:
                return commentjson.loads(self.clean_triple_backticks(json_str), object_pairs_hook=OrderedDict), ""
            return commentjson.loads(self.clean_triple_backticks(json_str)), ""
        except Exception as e:
            err = str(e)
        try:
            data = yaml.safe_load(self._sanitize_json_string(json_str))
            if isinstance(data, (dict, list)):
                return data, ""
            err += "\n--\nYAML parsing did not produce an object."
        except Exception as e:
            err += "\n--\n" + str(e)
        return None, err

    def load_fault_tolerant_json(self, json_str, ensure_ordered=False, llm=None):
        """
        Parse LLM output that is supposed to be JSON.
        commentjson first, then YAML on a sanitized copy, then json_repair,
        then (optionally) one LLM repair round. Raises if everything fails.
        """
        json_str = json_str or ""
        data, err = self._load_json_attempt(json_str, ensure_ordered)
        if data is not None:
            return data

        r_data, r_err = self._load_json_attempt(repair_json(json_str), ensure_ordered)
        if r_data is not None:
            return r_data

        if llm:
            self.color_print(f"load_fault_tolerant_json: JSON parsing failed: {r_err}. \nTrying LLM recovery...", color="red")
            prompt = (
                "The following text should be a single JSON object but it does not parse:\n"
                f"```\n{json_str}\n```\n"
                f"The parser error was: {r_err}\n"
                "Return the corrected JSON and nothing else."
            )
            r_data, r_err = self._load_json_attempt(llm.invoke(prompt), ensure_ordered)
            if r_data is not None:
                return r_data

        raise ValueError(f"load_fault_tolerant_json: JSON parsing failed: {r_err} \n- Original JSON: {json_str}")
