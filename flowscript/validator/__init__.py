# flowscript/validator package
# Flow script validation: error collection and the validate/extract entry points.
