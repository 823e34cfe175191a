"""Post-meeting pipeline -- audio to summary and extracted tasks.

SummarizationPipeline prompts the inference capability with the recorded
audio attached and parses the Action Items section into pending tasks.
SummaryWorker runs the pipeline in the background with a per-meeting
in-flight guard.
"""
