"""Audio decoding, segmentation and WAV serialisation."""
