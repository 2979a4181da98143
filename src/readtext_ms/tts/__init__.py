"""
Speech synthesis providers.

    - provider.py: SynthesisProvider base class and factory
    - providers/: Google Cloud TTS and AWS Polly implementations
"""
