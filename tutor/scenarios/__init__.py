"""
Tutor scenarios.

Each scenario file defines:
- name: Scenario identifier
- reply_prompt: Template for a tutor turn ({message}, {history}, {correction_rule})
- correction_rule_primary / correction_rule_other: Rule used when the learner
  did / did not write Russian
- word_prompt: Template for a word lookup ({word})
- greeting_text / greeting_follow_up: First message of a new conversation
"""
